"""Flask application factory for the clip extraction service."""

from flask import Flask, jsonify

from replayclip.config import PipelineConfig, load_config


def create_app(config: PipelineConfig | None = None) -> Flask:
    app = Flask(__name__)
    app.config["PIPELINE"] = config or load_config()

    from replayclip.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    return app
