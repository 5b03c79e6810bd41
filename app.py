"""Application entrypoint for the Passage Flask project."""
from __future__ import annotations

from passage_ext import create_app

app = create_app()


if __name__ == "__main__":
    # Running via `python app.py` is handy during prototyping, but production
    # deployments should rely on wsgi.py or a dedicated WSGI server.
    app.run(use_reloader=False, host="0.0.0.0", port=8000)
