import datetime
import logging
import os
import sys
from dataclasses import replace
from typing import Any, Dict

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

# Ensure src/ is on path when running as a script
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from dayplan.collaborators import SeededPlaceSearch
from dayplan.config import OptimizerSettings
from dayplan.data import sample_request
from dayplan.optimizer import build_day_plan
from dayplan.report import format_itinerary

load_dotenv()
logging.basicConfig(
    level=os.getenv("DAYPLAN_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)


def _settings(body: Dict[str, Any]) -> OptimizerSettings:
    settings = OptimizerSettings.from_env()
    strategy = body.get("strategy")
    if strategy and strategy != settings.strategy:
        settings = replace(settings, strategy=strategy)
    return settings


@app.route("/api/optimize", methods=["POST"])
def api_optimize():
    body = request.get_json(force=True, silent=True) or {}
    if not body.get("fixed_items"):
        date = body.get("date") or str(datetime.date.today() + datetime.timedelta(days=1))
        body = {**sample_request(date), **{k: v for k, v in body.items() if k == "strategy"}}

    try:
        settings = _settings(body)
    except ValueError as exc:
        return jsonify({"status": "invalid_input", "message": str(exc)}), 400

    plan = build_day_plan(body, settings=settings)
    if plan["status"] == "invalid_input":
        return jsonify(plan), 400
    if plan["status"] == "error":
        return jsonify(plan), 500
    plan["summary"] = format_itinerary(plan)
    return jsonify(plan)


@app.route("/api/places", methods=["GET"])
def api_places():
    term = request.args.get("term", "Cafe")
    default_lat, default_lon = OptimizerSettings().default_search_location
    try:
        lat = float(request.args.get("lat", default_lat))
        lon = float(request.args.get("lon", default_lon))
        radius = float(request.args.get("radius", 2000))
    except ValueError:
        return jsonify({"status": "invalid_input", "message": "lat, lon and radius must be numbers"}), 400
    places = SeededPlaceSearch().search_candidates(term, lat, lon, radius)
    logger.info("Served %d places for %r", len(places), term)
    return jsonify({"term": term, "center": {"lat": lat, "lon": lon}, "places": [p.to_dict() for p in places]})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port, debug=False)
