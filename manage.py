from galliconnect import create_app

# Flask-Migrate is wired inside create_app for hosted mode, so `flask --app manage db ...` works as is.
app = create_app()

if __name__ == '__main__':
    app.run()
