"""traefik-fed: aggregate HTTP routers from several Traefik instances into one dynamic configuration."""
