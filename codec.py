import logging

import pydantic
from kubernetes import client

from exc import DecodeError, EncodeError
from models import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    AdmissionReviewStatus,
    Patch,
    PatchType,
    Pod,
)

LOG = logging.getLogger(__name__)


class ReviewCodec:
    """Translate between AdmissionReview documents and the injector's models.

    One instance is created when the application starts and is only read
    afterwards, so it can be shared between request threads.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self._api_client = api_client or client.ApiClient()

    def decode(self, body: bytes) -> tuple[AdmissionRequest, Pod | None]:
        """Parse a review request.

        Returns the request and the embedded pod, or ``None`` in place of the
        pod when the request is for some other kind of resource.
        """
        try:
            review = AdmissionReview.model_validate_json(body)
        except pydantic.ValidationError as err:
            LOG.error("invalid admission review: %s", err)
            raise DecodeError(f"invalid admission review: {err}")

        req = review.request
        if req is None:
            raise DecodeError("admission review does not contain a request")

        if req.kind is not None and req.kind.kind and req.kind.kind != "Pod":
            return req, None

        if req.object is None:
            raise DecodeError("admission request does not contain an object")

        try:
            pod = Pod.model_validate(req.object)
        except pydantic.ValidationError as err:
            LOG.error("invalid pod in request %s: %s", req.uid, err)
            raise DecodeError(f"invalid pod: {err}")

        # Pods created through a namespaced endpoint frequently carry no
        # namespace in their own metadata.
        if not pod.namespace and req.namespace:
            pod = pod.model_copy(
                update={
                    "metadata": pod.metadata.model_copy(
                        update={"namespace": req.namespace}
                    )
                }
            )

        return req, pod

    def serialize_patch(self, patch: Patch) -> Patch:
        """Convert Kubernetes model objects in patch values to plain JSON data."""
        return Patch(
            [
                action.model_copy(
                    update={
                        "value": self._api_client.sanitize_for_serialization(
                            action.value
                        )
                    }
                )
                for action in patch.root
            ]
        )

    def encode(
        self, uid: str, message: str, patch: Patch | None = None
    ) -> AdmissionReview:
        """Build the response envelope. The original request is never echoed."""
        fields = {
            "uid": uid,
            "allowed": True,
            "status": AdmissionReviewStatus(message=message),
        }

        try:
            if patch is not None:
                fields["patchType"] = PatchType.JSONPatch
                fields["patch"] = self.serialize_patch(patch)
            return AdmissionReview(response=AdmissionResponse(**fields))
        except (pydantic.ValidationError, ValueError, TypeError) as err:
            LOG.exception("failed to encode admission response for %s", uid)
            raise EncodeError(f"failed to encode admission response: {err}")
