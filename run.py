from liga_typerow import create_app, db
from liga_typerow.models import (
    Bet,
    KnockoutBet,
    KnockoutTree,
    Match,
    Player,
    Profile,
    Ranking,
    ScorerBet,
    Team,
)
from liga_typerow.services import settlement_service

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Profile": Profile,
        "Team": Team,
        "Player": Player,
        "Match": Match,
        "Bet": Bet,
        "KnockoutTree": KnockoutTree,
        "KnockoutBet": KnockoutBet,
        "ScorerBet": ScorerBet,
        "Ranking": Ranking,
        "settlement": settlement_service,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
