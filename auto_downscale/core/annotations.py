PREFIX = "auto-downscale"

# Ingress
LAST_UPDATE = f"{PREFIX}/last-update"
DOWN = f"{PREFIX}/down"
SERVICES = f"{PREFIX}/services"
LABEL_SELECTOR = f"{PREFIX}/label-selector"
MIN_AGE = f"{PREFIX}/min-age"
DEPLOYMENTS = f"{PREFIX}/deployments"

# Service
ORIGINAL_TYPE = f"{PREFIX}/original-type"
ORIGINAL_SELECTOR = f"{PREFIX}/original-selector"
ORIGINAL_PORTS = f"{PREFIX}/original-ports"
REDIRECTED_LABEL = f"{PREFIX}/redirected"

# Workloads
ORIGINAL_REPLICAS = f"{PREFIX}/original-replicas"
ORIGINAL_SUSPEND = f"{PREFIX}/original-suspend"

TRUE = "true"

# Conventions de labels des charts
RELEASE_LABEL = "release"
INSTANCE_LABEL = "app.kubernetes.io/instance"


def get_annotations(resource: dict) -> dict:
    return (resource.get("metadata") or {}).get("annotations") or {}


def get_labels(resource: dict) -> dict:
    return (resource.get("metadata") or {}).get("labels") or {}


def is_down(resource: dict) -> bool:
    return get_annotations(resource).get(DOWN) == TRUE
