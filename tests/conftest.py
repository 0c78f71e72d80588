import pytest

import mutate
from models import Container, Metadata, Pod, PodSpec
from policy import INJECT_LABEL
from sidecar import SidecarConfig


@pytest.fixture()
def app():
    app = mutate.create_app(
        TESTING=True,
        TS_EXTRA_ARGS="--login-server=https://headscale.example.com",
        TS_KUBE_SECRET="tailscale-{{NAMESPACE}}-{{POD_NAME}}",
        TS_IMAGE="ghcr.io/tailscale/tailscale:v1.70.0",
        TS_AUTH_SECRET="tailscale-auth",
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def sidecar_config():
    return SidecarConfig(
        image="ghcr.io/tailscale/tailscale:v1.70.0",
        extra_args="--advertise-tags=tag:k8s",
        secret_pattern="",
    )


def make_pod(namespace="default", name="my-pod", labels=None, containers=("app",)):
    return Pod(
        metadata=Metadata(
            namespace=namespace,
            name=name,
            uid="0b1e2f70-1c0d-4b6e-9b8a-3f1a2c4d5e6f",
            labels=labels or {},
        ),
        spec=PodSpec(containers=[Container(name=c) for c in containers]),
    )


@pytest.fixture()
def opted_in_pod():
    return make_pod(labels={INJECT_LABEL: "true"})
