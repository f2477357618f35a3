from app.sendportal import create_app

app = create_app()
