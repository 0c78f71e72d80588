from kubernetes import client
from pydantic import BaseModel, ConfigDict

from models import Patch, PatchAction, PatchOp, Pod
from names import (
    DEFAULT_SECRET_PATTERN,
    hostname,
    interpolate_secret_name,
    sidecar_container_name,
)

CONTAINERS_PATH = "/spec/containers/-"


class SidecarConfig(BaseModel):
    """Process-wide settings for the injected container. Built once at startup."""

    model_config = ConfigDict(frozen=True)

    image: str = "ghcr.io/tailscale/tailscale:latest"
    extra_args: str = ""
    secret_pattern: str = ""
    auth_secret: str = "tailscale-auth"


def field_ref(field_path: str) -> client.V1EnvVarSource:
    return client.V1EnvVarSource(
        field_ref=client.V1ObjectFieldSelector(field_path=field_path)
    )


def build_sidecar(pod: Pod, config: SidecarConfig) -> client.V1Container:
    secret_name = interpolate_secret_name(
        config.secret_pattern,
        pod.namespace,
        pod.name,
        pod.uid,
        default=DEFAULT_SECRET_PATTERN,
    )

    env = [
        client.V1EnvVar(name="TS_EXTRA_ARGS", value=config.extra_args),
        client.V1EnvVar(name="TS_HOSTNAME", value=hostname(pod.name, pod.namespace)),
        client.V1EnvVar(name="TS_KUBE_SECRET", value=secret_name),
        client.V1EnvVar(name="TS_USERSPACE", value="false"),
        client.V1EnvVar(name="TS_DEBUG_FIREWALL_MODE", value="auto"),
        # The auth key secret is optional so that pods still start (and can
        # be logged in interactively) when it has not been created.
        client.V1EnvVar(
            name="TS_AUTHKEY",
            value_from=client.V1EnvVarSource(
                secret_key_ref=client.V1SecretKeySelector(
                    name=config.auth_secret,
                    key="TS_AUTHKEY",
                    optional=True,
                )
            ),
        ),
        # Resolved by the kubelet when the pod starts.
        client.V1EnvVar(name="POD_NAME", value_from=field_ref("metadata.name")),
        client.V1EnvVar(name="POD_UID", value_from=field_ref("metadata.uid")),
    ]

    return client.V1Container(
        name=sidecar_container_name(pod.namespace, pod.name),
        image=config.image,
        image_pull_policy="Always",
        env=env,
        security_context=client.V1SecurityContext(privileged=True),
    )


def sidecar_patch(pod: Pod, config: SidecarConfig) -> Patch:
    """Return a JSON Patch that appends the sidecar to the pod's containers."""

    return Patch(
        [
            PatchAction(
                op=PatchOp.ADD,
                path=CONTAINERS_PATH,
                value=build_sidecar(pod, config),
            )
        ]
    )
