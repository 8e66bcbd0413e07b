from app.tutoria import create_app

app = create_app()
