"""ASGI entrypoint for the declassifai client API."""

from declassifai.api.app import create_app
from declassifai.containers import build_container

app = create_app(build_container())
