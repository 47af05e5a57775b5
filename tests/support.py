DOCKER_HUB = "https://registry-1.docker.io"

ROUTES = {
    "docker.example.com": DOCKER_HUB,
    "quay.mirrors.example.com": "https://quay.io",
    "ghcr.mirrors.example.com": "https://ghcr.io",
}

HUB_CHALLENGE = 'Bearer realm="https://auth.docker.io/token",service="registry.docker.io"'
