from progression_api import create_app, db

app = create_app()

if __name__ == '__main__':
    try:
        app.run(host='0.0.0.0', port=app.config['PORT'])
    finally:
        # Close pooled connections on shutdown
        with app.app_context():
            db.engine.dispose()
