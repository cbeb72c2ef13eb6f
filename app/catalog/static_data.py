"""
Compiled-in catalog data used when no pre-fetched catalog covers a lookup.
"""
from typing import Dict, List

DEFAULT_REGISTRY = "registry.redhat.io/redhat"

CATALOG_DESCRIPTIONS: Dict[str, str] = {
    "redhat-operator-index": "Red Hat certified operators",
    "certified-operator-index": "Certified operators from partners",
    "community-operator-index": "Community operators",
}

UNKNOWN_CATALOG_DESCRIPTION = "Unknown catalog type"

LAST_RESORT_CHANNELS: List[str] = ["stable"]

# Operator names per catalog URL (registry path without tag)
STATIC_OPERATORS: Dict[str, List[str]] = {
    f"{DEFAULT_REGISTRY}/redhat-operator-index": [
        "3scale-operator",
        "advanced-cluster-management",
        "amq-broker-rhel8",
        "amq-online",
        "amq-streams",
        "ansible-automation-platform-operator",
        "ansible-cloud-addons-operator",
        "apicast-operator",
        "authorino-operator",
        "aws-efs-csi-driver-operator",
        "aws-load-balancer-operator",
        "cert-manager",
        "cluster-logging",
        "elasticsearch-operator",
        "file-integrity-operator",
        "gatekeeper-operator",
        "jaeger-product",
        "kiali-ossm",
        "local-storage-operator",
        "node-problem-detector",
        "odf-operator",
        "openshift-gitops-operator",
        "quay-operator",
        "red-hat-camel-k",
        "redhat-oadp-operator",
        "service-mesh-operator",
        "skupper-operator",
        "submariner",
        "tempo-product",
        "vertical-pod-autoscaler",
    ],
    f"{DEFAULT_REGISTRY}/certified-operator-index": [
        "3scale-operator",
        "amq-broker-rhel8",
        "amq-online",
        "amq-streams",
        "apicast-operator",
        "aws-load-balancer-operator",
        "couchbase-enterprise-certified",
        "crunchy-postgres-operator",
        "mongodb-enterprise",
        "nginx-ingress-operator",
        "postgresql",
        "redis-enterprise",
        "splunk-operator",
        "strimzi-kafka-operator",
    ],
    f"{DEFAULT_REGISTRY}/community-operator-index": [
        "3scale-operator",
        "amq-broker",
        "amq-streams",
        "apicast-operator",
        "couchbase-enterprise",
        "mongodb-enterprise",
        "nginx-ingress-operator",
        "postgresql",
        "redis-enterprise",
        "strimzi-kafka-operator",
    ],
}

# Channel names per operator, newest first
STATIC_CHANNELS: Dict[str, List[str]] = {
    "3scale-operator": ["threescale-2.15", "threescale-2.14", "threescale-2.13", "threescale-2.12", "threescale-2.11"],
    "advanced-cluster-management": ["release-2.13", "release-2.12", "release-2.11", "release-2.10",
                                    "release-2.9", "release-2.8"],
    "amq-broker-rhel8": ["7.12.x", "7.11.x", "7.10.x", "7.9.x"],
    "amq-online": ["1.10.x", "1.9.x", "1.8.x"],
    "amq-streams": ["amq-streams-2.6.x", "amq-streams-2.5.x", "amq-streams-2.4.x", "amq-streams-2.3.x",
                    "amq-streams-2.2.x"],
    "ansible-automation-platform-operator": ["stable-2.5", "stable-2.4", "stable-2.3", "stable-2.2", "stable-2.1"],
    "ansible-cloud-addons-operator": ["stable", "stable-0.1"],
    "apicast-operator": ["3scale-2.13", "3scale-2.12", "3scale-2.11"],
    "authorino-operator": ["stable", "stable-0.1"],
    "aws-efs-csi-driver-operator": ["stable", "stable-0.1"],
    "aws-load-balancer-operator": ["stable", "stable-0.1"],
    "bare-metal-event-relay": ["stable", "stable-4.12", "stable-4.13"],
    "cert-manager": ["stable-v1.14", "stable-v1.13", "stable-v1.12", "stable-v1.11", "stable-v1.10"],
    "cluster-baremetal-operator": ["stable", "stable-4.12", "stable-4.13"],
    "cluster-logging": ["stable-5.9", "stable-5.8", "stable-5.7", "stable-5.6", "stable-5.5"],
    "couchbase-enterprise-certified": ["stable", "stable-2.3"],
    "crunchy-postgres-operator": ["stable", "stable-5.4"],
    "elasticsearch-operator": ["stable-5.9", "stable-5.8", "stable-5.7", "stable-5.6", "stable-5.5"],
    "file-integrity-operator": ["stable", "stable-0.1"],
    "gatekeeper-operator": ["stable", "stable-0.1"],
    "jaeger-product": ["stable", "stable-1.47", "stable-1.46"],
    "kiali-ossm": ["stable", "stable-1.67", "stable-1.66"],
    "local-storage-operator": ["stable", "stable-4.15", "stable-4.14"],
    "metal3-operator": ["stable", "stable-4.12", "stable-4.13"],
    "mongodb-enterprise": ["stable", "stable-1.20"],
    "nginx-ingress-operator": ["stable", "stable-0.6"],
    "node-feature-discovery-operator": ["stable", "stable-4.12", "stable-4.13"],
    "node-observability-operator": ["stable", "stable-0.1"],
    "node-problem-detector": ["stable", "stable-0.1"],
    "odf-operator": ["stable-4.15", "stable-4.14", "stable-4.13", "stable-4.12"],
    "openshift-gitops-operator": ["stable-1.11", "stable-1.10", "stable-1.9", "stable-1.8", "stable-1.7"],
    "openshift-logging": ["stable", "stable-5.8", "stable-5.9"],
    "openshift-monitoring": ["stable", "stable-1.0", "stable-1.1"],
    "openshift-pipelines-operator-rh": ["stable", "stable-1.12", "stable-1.13"],
    "performance-addon-operator": ["stable", "stable-4.12", "stable-4.13"],
    "postgresql": ["stable", "stable-0.1"],
    "ptp-operator": ["stable", "stable-4.12", "stable-4.13"],
    "quay-operator": ["stable-3.9", "stable-3.8", "stable-3.7", "stable-3.6", "stable-3.5"],
    "red-hat-camel-k": ["stable", "stable-1.15", "stable-1.14"],
    "redhat-oadp-operator": ["stable-1.4", "stable-1.3", "stable-1.2", "stable-1.1", "stable-1.0"],
    "redis-enterprise": ["stable", "stable-6.2"],
    "rhods-operator": ["stable", "stable-1.32", "stable-1.33"],
    "serverless-operator": ["stable", "stable-1.32", "stable-1.33"],
    "service-mesh-operator": ["stable-2.6", "stable-2.5", "stable-2.4", "stable-2.3", "stable-2.2"],
    "servicemeshoperator": ["stable", "stable-2.4", "stable-2.5"],
    "skupper-operator": ["stable", "stable-1.4", "stable-1.3"],
    "splunk-operator": ["stable", "stable-1.0"],
    "sriov-network-operator": ["stable", "stable-4.12", "stable-4.13"],
    "strimzi-kafka-operator": ["stable", "stable-0.36"],
    "submariner": ["stable-0.16", "stable-0.15", "stable-0.14", "stable-0.13"],
    "tempo-product": ["stable", "stable-2.3"],
    "vertical-pod-autoscaler": ["stable", "stable-4.15"],
}


def catalog_description(catalog_type: str) -> str:
    return CATALOG_DESCRIPTIONS.get(catalog_type, UNKNOWN_CATALOG_DESCRIPTION)


def static_catalog_url(catalog_type: str, registry: str = DEFAULT_REGISTRY) -> str:
    return f"{registry.rstrip('/')}/{catalog_type}"
