from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from src.utils.config_service import AuthSettings, load_auth_config
from src.utils.logging import get_logger
from src.utils.postgres_service_factory import PostgresServiceFactory
from src.utils.rbac.audit import log_authentication_event
from src.utils.rbac.auth_service import AuthService
from src.utils.rbac.decorators import (
    audit_log,
    get_current_user,
    optional_auth,
    protect,
    validate_api_key,
)
from src.utils.rbac.jwt_parser import create_access_token
from src.utils.rbac.permission_enum import Action, Module
from src.utils.rbac.permissions import has_permission


logger = get_logger(__name__)


class FlaskAppWrapper(object):

    def __init__(self, app: Flask, auth: AuthService):
        logger.info("Entering FlaskAppWrapper")
        self.app = app
        self.auth = auth
        self.auth.init_app(self.app)

        # JSON bodies keep insertion order for readable audit/debug output
        self.app.json.sort_keys = False

        # enable CORS:
        CORS(self.app)

        # Public endpoints
        self.add_endpoint('/api/health', 'health', self.health, methods=["GET"])
        self.add_endpoint('/api/auth/session', 'session_info', optional_auth(self.session_info), methods=["GET"])

        # Authenticated endpoints
        logger.info("Adding auth API endpoints")
        self.add_endpoint('/api/auth/me', 'me', protect(audit_log('get_profile', 'user')(self.me)), methods=["GET"])
        self.add_endpoint(
            '/api/auth/refresh',
            'refresh_token',
            protect(audit_log('refresh_token', 'user')(self.refresh_token)),
            methods=["POST"],
        )
        self.add_endpoint(
            '/api/auth/permissions/<module>/<action>',
            'check_user_permission',
            protect(self.check_user_permission),
            methods=["GET"],
        )

        # Machine-to-machine endpoints
        self.add_endpoint('/api/integrations/ping', 'integration_ping', validate_api_key(self.integration_ping), methods=["GET"])

    def health(self):
        return jsonify({"status": "OK"}), 200

    def session_info(self):
        """Report who is calling, if anyone. Never fails on a bad token."""
        user = get_current_user()
        if user is None:
            return jsonify({'success': True, 'logged_in': False})
        return jsonify({'success': True, 'logged_in': True, 'user': user.to_dict()})

    def me(self):
        user = get_current_user()
        return jsonify({'success': True, 'message': 'Profile retrieved', 'user': user.to_dict()})

    def refresh_token(self):
        user = get_current_user()
        settings = self.auth.settings
        lifetime = timedelta(minutes=settings.access_token_expires_minutes)
        issued_at = datetime.now(timezone.utc)
        token = create_access_token(
            user.id,
            settings.jwt_secret,
            expires_in=lifetime,
            algorithm=settings.jwt_algorithm,
            now=issued_at,
        )
        log_authentication_event(user.id, 'token_issued', True)
        return jsonify({
            'success': True,
            'message': 'Token refreshed successfully',
            'data': {
                'token': token,
                'user': user.to_dict(),
                'expiresAt': (issued_at + lifetime).isoformat(),
                'expiresIn': int(lifetime.total_seconds()),
            },
        })

    def check_user_permission(self, module, action):
        """Answer whether the caller holds a permission, without denying the request."""
        valid_modules = {m.value for m in Module}
        valid_actions = {a.value for a in Action}
        if module not in valid_modules or action not in valid_actions:
            return jsonify({
                'success': False,
                'message': f"Unknown permission '{module}:{action}'.",
                'code': 'UNKNOWN_PERMISSION',
            }), 400

        decision = has_permission(get_current_user(), module, action)
        return jsonify({
            'success': True,
            'module': module,
            'action': action,
            'allowed': decision.allowed,
        })

    def integration_ping(self):
        return jsonify({'success': True, 'message': 'pong'})

    def add_endpoint(self, endpoint=None, endpoint_name=None, handler=None, methods=['GET'], *args, **kwargs):
        self.app.add_url_rule(endpoint, endpoint_name, handler, methods=methods, *args, **kwargs)

    def run(self, **kwargs):
        self.app.run(**kwargs)


def create_app(
    settings: Optional[AuthSettings] = None,
    auth: Optional[AuthService] = None,
) -> Flask:
    """
    Build the Flask app.

    Args:
        settings: Auth settings (loaded from config/secrets when omitted)
        auth: Fully wired AuthService. When omitted, one is built on the
              PostgreSQL services from the environment.
    """
    if auth is None:
        settings = settings or load_auth_config()
        factory = PostgresServiceFactory.get_instance()
        if factory is None:
            factory = PostgresServiceFactory.from_env()
            PostgresServiceFactory.set_instance(factory)
        auth = AuthService(
            settings,
            user_store=factory.user_service,
            role_store=factory.role_service,
            resource_store=factory.resource_service,
        )

    app = Flask(__name__)
    FlaskAppWrapper(app, auth)
    return app
