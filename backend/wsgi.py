from dlvery import create_app

app = create_app()
