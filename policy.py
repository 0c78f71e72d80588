from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from models import Pod
from names import LEGACY_SIDECAR_NAME, sidecar_container_name

INJECT_LABEL = "tailscale.com/inject"
INJECT_VALUE = "true"

INJECTED_MESSAGE = "sidecar injected"


class Action(StrEnum):
    SKIP = "skip"
    INJECT = "inject"


class Reason(StrEnum):
    NOT_OPTED_IN = "not opted in"
    ALREADY_INJECTED = "already injected"


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action
    reason: Reason | None = None

    @property
    def inject(self) -> bool:
        return self.action == Action.INJECT

    @property
    def message(self) -> str:
        if self.reason is None:
            return INJECTED_MESSAGE
        return str(self.reason)


INJECT = Decision(action=Action.INJECT)


def skip(reason: Reason) -> Decision:
    return Decision(action=Action.SKIP, reason=reason)


def evaluate(pod: Pod) -> Decision:
    """Decide whether the sidecar should be added to `pod`.

    Only the injection label and the existing container names are looked at.
    A pod that already runs a sidecar, under either the current or the legacy
    fixed name, is skipped.
    """

    if pod.labels.get(INJECT_LABEL, "") != INJECT_VALUE:
        return skip(Reason.NOT_OPTED_IN)

    names = {sidecar_container_name(pod.namespace, pod.name), LEGACY_SIDECAR_NAME}
    if any(name in names for name in pod.container_names):
        return skip(Reason.ALREADY_INJECTED)

    return INJECT
