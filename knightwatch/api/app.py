# ==============================================================================
# app.py  –  Flask boundary for the overlay renderer
# ------------------------------------------------------------------------------
# Routes:
#   GET    /api/broadcast?roundId=    Lichess round snapshot proxy
#   GET    /api/eval?fen=             evaluation proxy
#   GET    /api/games                 tracked games, styles, background
#   POST   /api/games                 track {white, black}
#   DELETE /api/games[/<index>]       untrack one / all
#   GET    /api/available             games present in the feed
#   POST   /api/round                 follow {roundId, tournamentId?}
#   GET    /api/status                session summary
#   GET    /api/styles                overlay styles + background
#   POST   /api/styles                {styles?, backgroundMode?, reset?}
#   GET    /api/tournaments?nb=       official broadcasts
#   GET    /api/tournaments/<id>      one tournament with its rounds
#   GET    /api/share                 share token for the current view
#   GET    /b/<token>                 restore a shared view
#   GET    /metrics                   Prometheus exposition
# ==============================================================================

from __future__ import annotations

from typing import Optional

from flask import Flask, Response, jsonify, request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from knightwatch.clients.evaluation_client import EvaluationError, EvaluationTimeoutError
from knightwatch.clients.lichess_client import BroadcastFetchError, FetchTimeoutError
from knightwatch.session.broadcast_session import BroadcastSession
from knightwatch.share.share_codec import BackgroundMode
from knightwatch.utils.display import game_to_dict
from knightwatch.utils.logging_utils import setup_logger
from knightwatch.utils.pgn_parser import identity_key

LOGGER = setup_logger("knightwatch.api")


def create_app(session: Optional[BroadcastSession] = None) -> Flask:
    """Build the Flask app around one `BroadcastSession`."""
    app = Flask(__name__)
    session = session or BroadcastSession()
    app.extensions["knightwatch_session"] = session

    # --------------------------------------------------------------------------
    # Proxies
    # --------------------------------------------------------------------------

    @app.route("/api/broadcast", methods=["GET"])
    def broadcast_snapshot():
        round_id = request.args.get("roundId")
        if not round_id:
            return jsonify({"error": "Round ID required"}), 400

        try:
            payload = session.client.fetch_round_snapshot(round_id)
        except FetchTimeoutError:
            LOGGER.warning("Snapshot timeout for round %s", round_id)
            return jsonify({"error": "Request timeout"}), 504
        except BroadcastFetchError as exc:
            LOGGER.error("Broadcast API error: %s", exc)
            return jsonify({"error": str(exc)}), exc.status_code or 500

        return jsonify(payload)

    @app.route("/api/eval", methods=["GET"])
    def evaluation():
        fen = request.args.get("fen")
        if not fen:
            return jsonify({"error": "FEN parameter required"}), 400

        try:
            score = session.evaluator.evaluate(fen)
        except EvaluationTimeoutError:
            return jsonify({"error": "Evaluation timeout"}), 504
        except EvaluationError as exc:
            LOGGER.error("Evaluation API error: %s", exc)
            return jsonify({"error": "Failed to fetch evaluation"}), 500

        return jsonify({"evaluation": score})

    @app.route("/api/tournaments", methods=["GET"])
    def list_tournaments():
        limit = request.args.get("nb", default=50, type=int)
        try:
            tournaments = session.client.fetch_broadcasts(limit)
        except FetchTimeoutError:
            return jsonify({"error": "Request timeout"}), 504
        except BroadcastFetchError as exc:
            LOGGER.error("Broadcast list error: %s", exc)
            return jsonify({"error": str(exc)}), exc.status_code or 500

        return jsonify({"tournaments": tournaments})

    @app.route("/api/tournaments/<tournament_id>", methods=["GET"])
    def tournament(tournament_id: str):
        try:
            payload = session.client.fetch_tournament(tournament_id)
        except FetchTimeoutError:
            return jsonify({"error": "Request timeout"}), 504

        if payload is None:
            return jsonify({"error": "Tournament not found"}), 404
        return jsonify(payload)

    # --------------------------------------------------------------------------
    # Tracked games
    # --------------------------------------------------------------------------

    @app.route("/api/games", methods=["GET"])
    def list_games():
        return jsonify(
            {
                "games": [game_to_dict(g, session.stale_after) for g in session.games()],
                "styles": session.styles,
                "backgroundMode": session.background_mode.value,
                "broadcastMode": session.broadcast_mode,
            }
        )

    @app.route("/api/games", methods=["POST"])
    def add_game():
        body = request.get_json(silent=True) or {}
        white, black = body.get("white"), body.get("black")
        if not isinstance(white, str) or not isinstance(black, str) or not white or not black:
            return jsonify({"error": "white and black are required"}), 400

        if not session.add_game(white, black):
            return jsonify({"error": "Game already tracked"}), 409

        tracked = session.tracked.get(identity_key(white, black))
        return jsonify(game_to_dict(tracked, session.stale_after)), 201

    @app.route("/api/games/<int:index>", methods=["DELETE"])
    def remove_game(index: int):
        if not session.remove_game(index):
            return jsonify({"error": "No game at that index"}), 404
        return jsonify({"removed": index})

    @app.route("/api/games", methods=["DELETE"])
    def clear_games():
        session.clear_games()
        return jsonify({"games": []})

    @app.route("/api/available", methods=["GET"])
    def available_games():
        return jsonify({"games": sorted(session.available_games())})

    # --------------------------------------------------------------------------
    # Appearance
    # --------------------------------------------------------------------------

    def _appearance():
        return jsonify(
            {"styles": session.styles, "backgroundMode": session.background_mode.value}
        )

    @app.route("/api/styles", methods=["GET"])
    def get_styles():
        return _appearance()

    @app.route("/api/styles", methods=["POST"])
    def update_styles():
        body = request.get_json(silent=True) or {}
        styles = body.get("styles") or {}
        mode = body.get("backgroundMode")
        if not isinstance(styles, dict):
            return jsonify({"error": "styles must be an object"}), 400
        if mode is not None and mode not in [m.value for m in BackgroundMode]:
            return jsonify({"error": f"Unknown background mode: {mode}"}), 400

        if body.get("reset"):
            session.reset_styles()
        if mode is not None:
            session.set_background_mode(mode)
        session.set_styles(**styles)
        return _appearance()

    # --------------------------------------------------------------------------
    # Round + sharing
    # --------------------------------------------------------------------------

    @app.route("/api/round", methods=["POST"])
    def start_round():
        body = request.get_json(silent=True) or {}
        round_id = body.get("roundId")
        if not round_id:
            return jsonify({"error": "Round ID required"}), 400

        session.start_round(
            str(round_id),
            tournament_id=body.get("tournamentId"),
            clear_games=bool(body.get("clearGames", False)),
        )
        return jsonify(session.status()), 202

    @app.route("/api/status", methods=["GET"])
    def status():
        return jsonify(session.status())

    @app.route("/api/share", methods=["GET"])
    def share():
        return jsonify({"token": session.share_token()})

    @app.route("/b/<token>", methods=["GET"])
    def load_shared(token: str):
        if not session.load_share_token(token):
            return jsonify({"error": "Invalid share link"}), 400
        return jsonify(session.status())

    # --------------------------------------------------------------------------
    # Metrics
    # --------------------------------------------------------------------------

    @app.route("/metrics", methods=["GET"])
    def metrics():
        return Response(generate_latest(), content_type=CONTENT_TYPE_LATEST)

    return app
