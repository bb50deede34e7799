"""
Knockout bracket rules for Liga Typerow

The real bracket is represented as an immutable BracketSnapshot built from
the resolution log of a knockout tree. Each user's predictions are compared
against one snapshot per settlement pass, so settling many users never
touches shared mutable state and re-settling the same snapshot always gives
the same result.

Rounds and slots:
    quarter_finals  8 slots, slot i is won by a team of round-of-16 pair i
    semi_finals     4 slots, slot j is won by quarter_finals slot 2j or 2j+1
    final           2 slots, slot k is won by semi_finals slot 2k or 2k+1
    winner          1 slot, won by one of the two final slots
"""

from dataclasses import dataclass, field

from liga_typerow.utils.errors import PreconditionFailed

ROUNDS = ("quarter_finals", "semi_finals", "final", "winner")

ROUND_SIZES = {
    "quarter_finals": 8,
    "semi_finals": 4,
    "final": 2,
    "winner": 1,
}

ROUND_OF_16_PAIRS = 8

# Slot outcomes
SLOT_HIT = "hit"
SLOT_MISS = "miss"
SLOT_PENDING = "pending"
SLOT_EMPTY = "empty"


def previous_round(round_name):
    """Round feeding the given round (None for the quarter finals)"""
    index = ROUNDS.index(round_name)
    return ROUNDS[index - 1] if index > 0 else None


def round_weights(points):
    """Map the configured [quarter, semi, final, champion] points onto round names"""
    if len(points) != len(ROUNDS):
        raise ValueError(f"Expected {len(ROUNDS)} round weights, got {len(points)}")
    return dict(zip(ROUNDS, (int(p) for p in points)))


def _team_id(value):
    if value is None or value == "":
        return None
    return int(value)


def normalize_round_of_16(raw_pairs):
    """Convert stored round-of-16 JSON into a tuple of 8 (team1, team2) pairs"""
    raw_pairs = list(raw_pairs or [])
    if len(raw_pairs) != ROUND_OF_16_PAIRS:
        raise ValueError(
            f"Round of 16 needs {ROUND_OF_16_PAIRS} pairs, got {len(raw_pairs)}"
        )

    pairs = []
    for pair in raw_pairs:
        if isinstance(pair, dict):
            pair = (pair.get("team1_id"), pair.get("team2_id"))
        team1, team2 = pair
        pairs.append((_team_id(team1), _team_id(team2)))
    return tuple(pairs)


def normalize_predictions(raw):
    """
    Normalize a predictions payload to the bracket shape.

    Missing rounds become lists of None; the champion is stored under
    "winner" as a single id.
    """
    raw = raw or {}
    predictions = {}
    for round_name in ROUNDS[:-1]:
        values = list(raw.get(round_name) or [])
        size = ROUND_SIZES[round_name]
        if len(values) > size:
            raise ValueError(f"{round_name} accepts at most {size} teams")
        values += [None] * (size - len(values))
        predictions[round_name] = [_team_id(v) for v in values]
    predictions["winner"] = _team_id(raw.get("winner"))
    return predictions


def prediction_slots(predictions, round_name):
    """Predicted teams for a round as a list (the champion as a 1-element list)"""
    if round_name == "winner":
        return [predictions.get("winner")]
    return list(predictions.get(round_name) or [None] * ROUND_SIZES[round_name])


def validate_predictions(predictions, round_of_16):
    """
    Check that every predicted slot holds a team reachable from its upstream
    predicted winners (no picking an eliminated team).

    Returns:
        tuple: (is_valid, message)
    """
    quarter = predictions["quarter_finals"]
    for slot, team in enumerate(quarter):
        if team is None:
            continue
        pair = round_of_16[slot]
        if team not in [t for t in pair if t is not None]:
            return False, f"quarter_finals[{slot}]: team {team} does not play in round of 16 pair {slot}"

    for round_name in ROUNDS[1:]:
        upstream = prediction_slots(predictions, previous_round(round_name))
        for slot, team in enumerate(prediction_slots(predictions, round_name)):
            if team is None:
                continue
            candidates = [upstream[2 * slot], upstream[2 * slot + 1]]
            if team not in [c for c in candidates if c is not None]:
                return (
                    False,
                    f"{round_name}[{slot}]: team {team} is not one of your predicted winners feeding this slot",
                )

    return True, "Predictions valid"


@dataclass(frozen=True)
class BracketSnapshot:
    """Immutable view of the real bracket at one resolution version"""

    round_of_16: tuple
    resolved: dict = field(default_factory=dict)
    version: int = 0

    @classmethod
    def from_resolutions(cls, round_of_16, resolutions, version=0):
        """
        Build a snapshot from the resolution log.

        Args:
            round_of_16: stored round-of-16 pairs
            resolutions: iterable of (round_name, slot, team_id)
            version: tree version the log was read at
        """
        slots = {name: [None] * size for name, size in ROUND_SIZES.items()}
        for round_name, slot, team_id in resolutions:
            if round_name not in slots:
                raise ValueError(f"Unknown round: {round_name}")
            slots[round_name][slot] = _team_id(team_id)

        return cls(
            round_of_16=normalize_round_of_16(round_of_16),
            resolved={name: tuple(values) for name, values in slots.items()},
            version=version,
        )

    def actual(self, round_name, slot):
        return self.resolved.get(round_name, (None,) * ROUND_SIZES[round_name])[slot]

    def feeder_teams(self, round_name, slot):
        """Teams that compete for a slot (None where still unknown)"""
        if round_name == "quarter_finals":
            return tuple(self.round_of_16[slot])
        upstream = previous_round(round_name)
        return (self.actual(upstream, 2 * slot), self.actual(upstream, 2 * slot + 1))

    def is_round_ready(self, round_name):
        """A round can be settled once its prerequisite round is fully resolved"""
        if round_name == "quarter_finals":
            return all(
                team is not None for pair in self.round_of_16 for team in pair
            )
        upstream = previous_round(round_name)
        return all(
            self.actual(upstream, slot) is not None
            for slot in range(ROUND_SIZES[upstream])
        )

    def is_complete(self):
        return all(
            self.actual(round_name, slot) is not None
            for round_name in ROUNDS
            for slot in range(ROUND_SIZES[round_name])
        )

    def possible_teams(self, round_name, slot):
        """
        Teams that can still win a slot.

        Returns None when an unknown team could still reach the slot (an empty
        round-of-16 position somewhere upstream).
        """
        resolved = self.actual(round_name, slot)
        if resolved is not None:
            return frozenset([resolved])

        if round_name == "quarter_finals":
            pair = self.round_of_16[slot]
            if any(team is None for team in pair):
                return None
            return frozenset(pair)

        upstream = previous_round(round_name)
        possible = set()
        for feeder_slot in (2 * slot, 2 * slot + 1):
            feeder = self.possible_teams(upstream, feeder_slot)
            if feeder is None:
                return None
            possible |= feeder
        return frozenset(possible)

    def check_resolution(self, round_name, slot, team_id):
        """
        Validate that a team may be recorded as the winner of a slot.

        Raises:
            PreconditionFailed: the slot's upstream is unresolved, the team
                did not compete for it, or it already has another winner.
        """
        if round_name not in ROUND_SIZES:
            raise PreconditionFailed(f"Unknown round: {round_name}")
        if not 0 <= slot < ROUND_SIZES[round_name]:
            raise PreconditionFailed(f"{round_name} has no slot {slot}")

        feeders = self.feeder_teams(round_name, slot)
        if any(team is None for team in feeders):
            raise PreconditionFailed(
                f"Cannot resolve {round_name}[{slot}] before both competing teams are known"
            )
        if team_id not in feeders:
            raise PreconditionFailed(
                f"Team {team_id} does not compete for {round_name}[{slot}]"
            )

        current = self.actual(round_name, slot)
        if current is not None and current != team_id:
            raise PreconditionFailed(
                f"{round_name}[{slot}] is already resolved to team {current}"
            )

        return current == team_id


@dataclass(frozen=True)
class RoundScore:
    round_name: str
    ready: bool
    weight: int
    slots: tuple

    @property
    def hits(self):
        return sum(1 for outcome in self.slots if outcome == SLOT_HIT)

    @property
    def points(self):
        return self.hits * self.weight

    @property
    def pending(self):
        return sum(1 for outcome in self.slots if outcome == SLOT_PENDING)

    def to_dict(self):
        return {
            "round": self.round_name,
            "ready": self.ready,
            "weight": self.weight,
            "slots": list(self.slots),
            "hits": self.hits,
            "pending": self.pending,
            "points": self.points,
        }


@dataclass(frozen=True)
class BracketScore:
    version: int
    rounds: tuple

    @property
    def total(self):
        return sum(round_score.points for round_score in self.rounds)

    def to_dict(self):
        return {
            "version": self.version,
            "total": self.total,
            "rounds": [round_score.to_dict() for round_score in self.rounds],
        }


def score_slot(snapshot, round_name, slot, predicted_team):
    """Outcome of one predicted slot against a snapshot"""
    if predicted_team is None:
        return SLOT_EMPTY

    actual = snapshot.actual(round_name, slot)
    if actual is not None:
        return SLOT_HIT if actual == predicted_team else SLOT_MISS

    # Unresolved: a team that can no longer reach the slot is a known miss
    possible = snapshot.possible_teams(round_name, slot)
    if possible is not None and predicted_team not in possible:
        return SLOT_MISS

    return SLOT_PENDING


def settle_round(snapshot, predictions, round_name, weight):
    """
    Score one round of a user's predictions.

    Raises:
        PreconditionFailed: the prerequisite round is not fully resolved.
    """
    if not snapshot.is_round_ready(round_name):
        raise PreconditionFailed(
            f"Cannot settle {round_name} before the previous round is fully resolved"
        )

    outcomes = tuple(
        score_slot(snapshot, round_name, slot, team)
        for slot, team in enumerate(prediction_slots(predictions, round_name))
    )
    return RoundScore(round_name=round_name, ready=True, weight=weight, slots=outcomes)


def _waiting_round(predictions, round_name, weight):
    outcomes = tuple(
        SLOT_EMPTY if team is None else SLOT_PENDING
        for team in prediction_slots(predictions, round_name)
    )
    return RoundScore(round_name=round_name, ready=False, weight=weight, slots=outcomes)


def settle_bracket(snapshot, predictions, weights):
    """
    Score every round that can be settled; later rounds are reported as
    pending and will be scored by a later pass.

    Args:
        snapshot: BracketSnapshot
        predictions: normalized predictions (see normalize_predictions)
        weights: dict of round name -> points per correct slot
    """
    rounds = []
    for round_name in ROUNDS:
        weight = weights[round_name]
        if snapshot.is_round_ready(round_name):
            rounds.append(settle_round(snapshot, predictions, round_name, weight))
        else:
            rounds.append(_waiting_round(predictions, round_name, weight))

    return BracketScore(version=snapshot.version, rounds=tuple(rounds))
