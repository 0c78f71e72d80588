import logging
import os
import socket
import ssl
import sys

from flask import Flask, request, jsonify, current_app
from pydantic import BaseModel
from werkzeug.exceptions import ClientDisconnected, MethodNotAllowed

import policy
from codec import ReviewCodec
from exc import ApplicationError, RequestError, TransportError
from sidecar import SidecarConfig, sidecar_patch

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

NOT_A_POD_MESSAGE = "not a pod"


class DEFAULTS:
    PORT = 8443
    TLS_CERT = "/etc/webhook/certs/tls.crt"
    TLS_KEY = "/etc/webhook/certs/tls.key"
    TS_EXTRA_ARGS = ""
    TS_KUBE_SECRET = ""
    TS_IMAGE = "ghcr.io/tailscale/tailscale:latest"
    TS_AUTH_SECRET = "tailscale-auth"


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(mode="json", exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


@jsonresponse()
def mutate_pod():
    try:
        body = request.get_data()
    except ClientDisconnected as err:
        LOG.error("error reading request body: %s", err)
        raise RequestError("error reading request body")

    codec = current_app.codec
    req, pod = codec.decode(body)

    if pod is None:
        LOG.info("request %s is not for a pod, skipping", req.uid)
        return codec.encode(req.uid, NOT_A_POD_MESSAGE)

    decision = policy.evaluate(pod)

    if not decision.inject:
        LOG.info(
            "pod %s/%s: %s, skipping", pod.namespace, pod.name, decision.message
        )
        return codec.encode(req.uid, decision.message)

    LOG.info("injecting tailscale sidecar into pod %s/%s", pod.namespace, pod.name)
    patch = sidecar_patch(pod, current_app.sidecar_config)
    return codec.encode(req.uid, decision.message, patch)


def handle_applicationerror(err):
    return str(err), err.status, {"content-type": "text/plain"}


def handle_methodnotallowed(err):
    headers = {"content-type": "text/plain"}
    if err.valid_methods:
        headers["allow"] = ", ".join(err.valid_methods)
    return "method not allowed", 405, headers


def health():
    return "OK", 200, {"content-type": "text/plain"}


def config_from_environ(app: Flask):
    """Override defaults with any non-empty environment variable of the same name."""

    for key in dir(DEFAULTS):
        if not key.isupper():
            continue
        val = os.environ.get(key)
        if val:
            app.config[key] = val


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    Configuration is taken from DEFAULTS, then from the environment, then
    from keyword arguments, so tests can build an app without touching the
    environment.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    config_from_environ(app)
    if config:
        app.config.update(config)

    try:
        app.config["PORT"] = int(app.config["PORT"])
    except ValueError:
        LOG.error("invalid port: %s", app.config["PORT"])
        sys.exit(1)

    app.sidecar_config = SidecarConfig(
        image=app.config["TS_IMAGE"],
        extra_args=app.config["TS_EXTRA_ARGS"],
        secret_pattern=app.config["TS_KUBE_SECRET"],
        auth_secret=app.config["TS_AUTH_SECRET"],
    )
    app.codec = ReviewCodec()

    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.errorhandler(MethodNotAllowed)(handle_methodnotallowed)
    app.add_url_rule("/health", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_pod, methods=["POST"])

    return app


def ssl_context(cert: str, key: str) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    try:
        context.load_cert_chain(cert, key)
    except OSError as err:
        raise TransportError(f"unable to load certificate {cert}: {err}")
    return context


def check_port(host: str, port: int):
    """Make sure the listen address can be bound.

    werkzeug handles its own bind errors by printing to stderr and exiting,
    so the address is tried here first.
    """

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
    except OSError as err:
        raise TransportError(f"unable to listen on {host}:{port}: {err}")


def serve(app: Flask, host: str = "0.0.0.0"):
    context = ssl_context(app.config["TLS_CERT"], app.config["TLS_KEY"])
    check_port(host, app.config["PORT"])

    LOG.info("starting webhook server on port %d", app.config["PORT"])
    app.run(host=host, port=app.config["PORT"], ssl_context=context)


def main():
    try:
        serve(create_app())
    except TransportError as err:
        LOG.error("%s", err)
        sys.exit(1)


if __name__ == "__main__":
    main()
