from pickpool import create_app, db
from pickpool.models import Participant, PickDocument, WeekRecap

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Participant": Participant,
        "PickDocument": PickDocument,
        "WeekRecap": WeekRecap,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
