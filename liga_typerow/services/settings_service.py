"""
Scoring configuration lookup.

Values stored in the settings table override the application config, so an
administrator can adjust round weights or deadlines without a redeploy.
"""

import logging

from flask import current_app

from liga_typerow import db
from liga_typerow.models import Setting
from liga_typerow.utils.bracket import round_weights
from liga_typerow.utils.timezone_utils import parse_deadline

logger = logging.getLogger(__name__)

KO_ROUND_POINTS = "ko_round_points"
SCORER_SCORING = "scorer_scoring"
KO_LOCK_DEADLINE = "ko_lock_deadline"
SCORER_LOCK_DEADLINE = "scorer_lock_deadline"

KNOWN_KEYS = (KO_ROUND_POINTS, SCORER_SCORING, KO_LOCK_DEADLINE, SCORER_LOCK_DEADLINE)


def ko_round_weights():
    """Points per correct slot as a dict of round name -> points"""
    points = Setting.get_value(KO_ROUND_POINTS)
    if points is None:
        points = current_app.config.get("KO_ROUND_POINTS", [1, 2, 3, 5])
    return round_weights(points)


def scorer_scoring():
    """Top scorer configuration: {"exact": points, "top_n": {"n", "points"} or None}"""
    scoring = Setting.get_value(SCORER_SCORING)
    if scoring is not None:
        return {
            "exact": int(scoring.get("exact", 0)),
            "top_n": scoring.get("top_n") or None,
        }

    top_n = None
    n = current_app.config.get("SCORER_TOP_N", 0)
    if n:
        top_n = {"n": n, "points": current_app.config.get("SCORER_TOP_N_POINTS", 0)}

    return {
        "exact": current_app.config.get("SCORER_EXACT_POINTS", 5),
        "top_n": top_n,
    }


def ko_lock_deadline():
    value = Setting.get_value(KO_LOCK_DEADLINE)
    if value is None:
        value = current_app.config.get("KO_LOCK_DEADLINE")
    return parse_deadline(value)


def scorer_lock_deadline():
    value = Setting.get_value(SCORER_LOCK_DEADLINE)
    if value is None:
        value = current_app.config.get("SCORER_LOCK_DEADLINE")
    return parse_deadline(value)


def _non_negative_int(value, name):
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer")


def update_setting(key, value):
    """Validate and store an override, then commit"""
    if key not in KNOWN_KEYS:
        raise ValueError(f"Unknown setting: {key}")

    if key == KO_ROUND_POINTS:
        round_weights(value)
    elif key == SCORER_SCORING:
        if not isinstance(value, dict) or "exact" not in value:
            raise ValueError("Scorer scoring needs an 'exact' value")
        _non_negative_int(value["exact"], "exact")
        top_n = value.get("top_n")
        if top_n:
            if not isinstance(top_n, dict) or "n" not in top_n or "points" not in top_n:
                raise ValueError("top_n needs 'n' and 'points'")
            _non_negative_int(top_n["n"], "top_n.n")
            _non_negative_int(top_n["points"], "top_n.points")
    else:
        parse_deadline(value)

    Setting.set_value(key, value)
    db.session.commit()
    logger.info(f"Setting {key} updated to {value!r}")
