from app.micomunity import create_app

app = create_app()
