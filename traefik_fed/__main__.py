import sys

from traefik_fed.cmd.traefik_fed import main

sys.exit(main())
