from roundpicks import create_app, db
from roundpicks.models import Participant, PointSchedule, Prediction, Round, ScoreRecord, Season

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Season": Season,
        "Participant": Participant,
        "Round": Round,
        "Prediction": Prediction,
        "PointSchedule": PointSchedule,
        "ScoreRecord": ScoreRecord,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
