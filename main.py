from datetime import timedelta
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from dotenv import load_dotenv
from flasgger import Swagger
from swagger__config import SWAGGER_CONFIG, SWAGGER_TEMPLATE

load_dotenv()
from canteen.config import Config  # noqa: E402
from canteen.extensions import db  # noqa: E402
from canteen.routes.auth import auth_bp  # noqa: E402
from canteen.routes.discounts import discounts_bp  # noqa: E402
from canteen.routes.menu import menu_bp  # noqa: E402
from canteen.routes.orders import orders_bp  # noqa: E402
from canteen.routes.staff import staff_bp  # noqa: E402
from canteen.routes.stalls import stalls_bp  # noqa: E402
from canteen.routes.students import students_bp  # noqa: E402
from canteen.services.identity import TokenIssuer  # noqa: E402


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return (
            jsonify({"status": "error", "message": "Route not found", "path": request.path}),
            404,
        )

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"status": "error", "message": "Method not allowed"}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"status": "error", "message": "Uploaded file is too large"}), 413


def create_app(overrides=None):
    app = Flask(__name__)
    try:
        app.config.from_object(Config)
        if overrides:
            app.config.update(overrides)

        CORS(app)
        db.init_app(app)

        app.extensions["token_issuer"] = TokenIssuer(
            secret=app.config["JWT_SECRET_KEY"],
            expires=timedelta(hours=app.config["JWT_EXPIRES_HOURS"]),
            remember_expires=timedelta(days=app.config["JWT_REMEMBER_EXPIRES_DAYS"]),
        )

        # Determine host based on environment
        host = os.environ.get("API_HOST", "127.0.0.1:5000")
        swagger_template = SWAGGER_TEMPLATE.copy()
        swagger_template["host"] = host
        Swagger(app, config=SWAGGER_CONFIG, template=swagger_template)

        blueprints = [
            auth_bp,
            students_bp,
            staff_bp,
            stalls_bp,
            menu_bp,
            discounts_bp,
            orders_bp,
        ]

        for bp in blueprints:
            app.register_blueprint(bp)
            app.logger.debug(f"{bp.name} registered")

        _register_error_handlers(app)

        @app.route("/")
        def home():
            """
            Root endpoint - API status
            ---
            tags:
              - Utility
            responses:
              200:
                description: API is running
                schema:
                  type: object
                  properties:
                    status:
                      type: string
                    message:
                      type: string
                    docs_url:
                      type: string
            """
            return {
                "status": "ok",
                "message": "Canteen backend is running!",
                "docs_url": SWAGGER_CONFIG["specs_route"],
            }, 200

        app.logger.info(
            f"Canteen API ready with {len(list(app.url_map.iter_rules()))} routes"
        )

    except Exception as e:
        print(f"Error during app creation: {e}")
        raise

    return app


app = create_app()


if __name__ == "__main__":
    # Create a .env containing:
    #       MYSQL_PUBLIC_URL=mysql+pymysql://<USER>:<PASSWORD>@<HOST>:<PORT>/canteen
    #       JWT_SECRET_KEY=<random string>
    port = int(os.environ.get("PORT", 5000))
    app.run(
        host="0.0.0.0", port=port, debug=os.environ.get("FLASK_ENV") != "production"
    )
