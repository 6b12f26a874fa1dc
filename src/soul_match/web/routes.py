import logging
import uuid
from typing import Any

from flask import Blueprint, Flask, jsonify, request, session

from soul_match.domain.catalog import Catalog
from soul_match.domain.models import WeightedChoice
from soul_match.repositories.handoff_state_repository import HandoffStateRepository
from soul_match.services.link_service import RESOLUTION_ORDER
from soul_match.services.scoring_service import ScoringService
from soul_match.workflows.handoff_workflow import HandoffState, HandoffWorkflow, Transition

logger = logging.getLogger(__name__)

CLIENT_KEY = "client"


def parse_selection(payload: Any, catalog: Catalog) -> list[WeightedChoice]:
    """Turn a request body's ``selection`` list into choices; categories default from the catalog."""
    if not isinstance(payload, dict) or not isinstance(payload.get("selection"), list):
        raise ValueError("body must be an object with a 'selection' list")
    choices = []
    for item in payload["selection"]:
        if not isinstance(item, dict) or "id" not in item:
            raise ValueError(f"invalid choice: {item!r}")
        category = item.get("category")
        if not category:
            tag = catalog.tag(item["id"])
            if tag is None:
                raise ValueError(f"unknown interest '{item['id']}'")
            category = tag.category
        choices.append(WeightedChoice(tag_id=item["id"], category=category, importance=item.get("importance")))
    return choices


def register_routes(
    app: Flask,
    *,
    catalog: Catalog,
    scoring_service: ScoringService,
    workflow: HandoffWorkflow,
    states: HandoffStateRepository,
) -> None:
    bp = Blueprint("web", __name__)

    def client_id() -> str:
        if CLIENT_KEY not in session:
            session[CLIENT_KEY] = uuid.uuid4().hex
        return session[CLIENT_KEY]

    def current_state() -> HandoffState:
        return HandoffState.from_dict(states.load(client_id()))

    def view(transition: Transition):
        state = transition.state
        states.save(client_id(), state.to_dict())
        result = state.match_result
        return jsonify(
            {
                "stage": state.stage.value,
                "participant1Name": state.participant1_name,
                "participant2Name": state.participant2_name,
                "sessionId": state.record.session_id if state.record else None,
                "shareLink": state.share_link,
                "reportLink": state.report_link,
                "matchResult": result.to_dict() if result else None,
                "matchLevel": scoring_service.match_level(result.overall_score) if result else None,
                "categoryNames": {c: scoring_service.category_name(c) for c in result.category_scores}
                if result
                else None,
                "fired": transition.fired,
                "reason": transition.reason,
            }
        )

    def bad_request(message: str):
        return jsonify({"error": message}), 400

    @bp.route("/", methods=["GET"])
    def index():
        if any(request.args.get(param) for param in RESOLUTION_ORDER):
            return view(workflow.start(request.args, client_id()))
        return view(Transition(current_state(), fired=False))

    @bp.route("/state", methods=["GET"])
    def state():
        return view(Transition(current_state(), fired=False))

    @bp.route("/catalog", methods=["GET"])
    def catalog_view():
        return jsonify(catalog.to_dict())

    @bp.route("/names", methods=["POST"])
    def enter_names():
        body = request.get_json(silent=True) or {}
        return view(
            workflow.enter_names(
                current_state(),
                str(body.get("participant1Name", "")),
                str(body.get("participant2Name", "")),
            )
        )

    @bp.route("/participant1/selection", methods=["POST"])
    def submit_participant1():
        try:
            choices = parse_selection(request.get_json(silent=True), catalog)
        except ValueError as exc:
            return bad_request(str(exc))
        return view(workflow.submit_participant1(current_state(), choices, client_id()))

    @bp.route("/continue", methods=["POST"])
    def continue_locally():
        return view(workflow.continue_locally(current_state()))

    @bp.route("/participant2/name", methods=["POST"])
    def enter_participant2_name():
        body = request.get_json(silent=True) or {}
        return view(workflow.enter_participant2_name(current_state(), str(body.get("name", ""))))

    @bp.route("/participant2/selection", methods=["POST"])
    def submit_participant2():
        try:
            choices = parse_selection(request.get_json(silent=True), catalog)
        except ValueError as exc:
            return bad_request(str(exc))
        return view(workflow.submit_participant2(current_state(), choices, client_id()))

    @bp.route("/results/share", methods=["POST"])
    def share_results():
        return view(workflow.share_results(current_state()))

    @bp.route("/reset", methods=["POST"])
    def reset():
        return view(workflow.reset(current_state(), client_id()))

    app.register_blueprint(bp)
