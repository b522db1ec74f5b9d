# Routes package - registers all blueprints with the Flask app

def register_blueprints(app):
    """Register all route blueprints with the Flask app."""
    from .devices import devices_bp

    app.register_blueprint(devices_bp)
