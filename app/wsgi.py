from app.feedbackhub import create_app

app = create_app()
