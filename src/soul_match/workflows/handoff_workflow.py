import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Mapping, TypedDict

from langgraph.graph import END, StateGraph

from soul_match.domain.models import (
    MatchResult,
    ParticipantRecord,
    SessionRecord,
    WeightedChoice,
    normalize_selection,
    utc_now,
)
from soul_match.repositories.local_slot import DEFAULT_CLIENT_ID, LocalSessionSlot
from soul_match.services import session_codec
from soul_match.services.link_service import LinkBuilder, LinkResolver, ResolvedLink
from soul_match.services.scoring_service import ScoringService
from soul_match.services.session_store import FallbackSessionStore, SaveReceipt

logger = logging.getLogger(__name__)


class HandoffStage(str, Enum):
    WELCOME = "welcome"
    NAMES_ENTERED = "names_entered"
    PARTICIPANT1_FILLING = "participant1_filling"
    AWAITING_SHARE = "awaiting_share"
    PARTICIPANT2_FILLING = "participant2_filling"
    RESULTS_READY = "results_ready"
    LINK_RESOLVED = "link_resolved"


@dataclass(frozen=True)
class HandoffState:
    stage: HandoffStage = HandoffStage.WELCOME
    participant1_name: str = ""
    participant2_name: str = ""
    record: SessionRecord | None = None
    share_link: str | None = None
    report_link: str | None = None

    @property
    def match_result(self) -> MatchResult | None:
        return self.record.match_result if self.record else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "participant1Name": self.participant1_name,
            "participant2Name": self.participant2_name,
            "record": self.record.to_dict() if self.record else None,
            "shareLink": self.share_link,
            "reportLink": self.report_link,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "HandoffState":
        """Rebuild a stored state; anything unreadable starts over at WELCOME."""
        if not data:
            return cls()
        try:
            stage = HandoffStage(data.get("stage", HandoffStage.WELCOME.value))
        except ValueError:
            return cls()
        raw_record = data.get("record")
        record = session_codec.normalize(raw_record).record if isinstance(raw_record, dict) else None
        if raw_record and record is None:
            return cls()
        return cls(
            stage=stage,
            participant1_name=data.get("participant1Name") or "",
            participant2_name=data.get("participant2Name") or "",
            record=record,
            share_link=data.get("shareLink"),
            report_link=data.get("reportLink"),
        )


@dataclass(frozen=True)
class Transition:
    state: HandoffState
    fired: bool
    reason: str | None = None


class Participant1State(TypedDict):
    client_id: str
    participant1_name: str
    participant2_name: str
    selection: tuple[WeightedChoice, ...]
    session_id: str
    record: SessionRecord | None
    receipt: SaveReceipt | None
    share_link: str


class Participant2State(TypedDict):
    client_id: str
    record: SessionRecord
    participant2_name: str
    selection: tuple[WeightedChoice, ...]
    receipt: SaveReceipt | None
    report_link: str


class ResolutionState(TypedDict):
    client_id: str
    params: dict[str, str]
    resolved: ResolvedLink | None
    stage: HandoffStage
    record: SessionRecord | None


class HandoffWorkflow:
    """Two-party handoff: names, participant 1, share link, participant 2, results."""

    def __init__(
        self,
        *,
        scoring_service: ScoringService,
        store: FallbackSessionStore,
        resolver: LinkResolver,
        local_slot: LocalSessionSlot,
        link_builder: LinkBuilder,
    ) -> None:
        self._scoring = scoring_service
        self._store = store
        self._resolver = resolver
        self._local_slot = local_slot
        self._links = link_builder
        self._participant1_graph = self._build_participant1_graph()
        self._participant2_graph = self._build_participant2_graph()
        self._resolution_graph = self._build_resolution_graph()

    # graphs

    def _build_participant1_graph(self):
        graph = StateGraph(Participant1State)
        graph.add_node("build_record", self._build_record)
        graph.add_node("persist", self._persist_first_submission)
        graph.add_node("share_link", self._make_share_link)
        graph.set_entry_point("build_record")
        graph.add_edge("build_record", "persist")
        graph.add_edge("persist", "share_link")
        graph.add_edge("share_link", END)
        return graph.compile()

    def _build_participant2_graph(self):
        graph = StateGraph(Participant2State)
        graph.add_node("add_participant", self._add_participant2)
        graph.add_node("score", self._score)
        graph.add_node("persist", self._persist_completed)
        graph.set_entry_point("add_participant")
        graph.add_edge("add_participant", "score")
        graph.add_edge("score", "persist")
        graph.add_edge("persist", END)
        return graph.compile()

    def _build_resolution_graph(self):
        graph = StateGraph(ResolutionState)
        graph.add_node("resolve", self._resolve)
        graph.add_node("no_session", self._no_session)
        graph.add_node("await_participant2", self._await_participant2)
        graph.add_node("rescore", self._rescore)
        graph.add_node("show_results", self._show_results)
        graph.set_entry_point("resolve")
        graph.add_conditional_edges(
            "resolve",
            self._route_resolved,
            {
                "no_session": "no_session",
                "await_participant2": "await_participant2",
                "rescore": "rescore",
                "show_results": "show_results",
            },
        )
        graph.add_edge("rescore", "show_results")
        graph.add_edge("no_session", END)
        graph.add_edge("await_participant2", END)
        graph.add_edge("show_results", END)
        return graph.compile()

    # participant 1 nodes

    def _build_record(self, state: Participant1State) -> Participant1State:
        participant1 = ParticipantRecord(
            participant_id="user1",
            name=state["participant1_name"],
            selection=state["selection"],
            completed=True,
            submitted_at=utc_now(),
        )
        state["record"] = SessionRecord(
            session_id=state["session_id"],
            created_at=utc_now(),
            participant1=participant1,
            participant2_name=state["participant2_name"],
        )
        return state

    def _persist_first_submission(self, state: Participant1State) -> Participant1State:
        record = state["record"]
        self._local_slot.save(record, state["client_id"])
        state["receipt"] = self._store.save(record, preferred_id=record.session_id)
        return state

    def _make_share_link(self, state: Participant1State) -> Participant1State:
        state["share_link"] = self._links.share_link(state["receipt"])
        return state

    # participant 2 nodes

    def _add_participant2(self, state: Participant2State) -> Participant2State:
        participant2 = ParticipantRecord(
            participant_id="user2",
            name=state["participant2_name"],
            selection=state["selection"],
            completed=True,
            submitted_at=utc_now(),
        )
        state["record"] = replace(
            state["record"],
            participant2=participant2,
            participant2_name=state["participant2_name"],
        )
        return state

    def _score(self, state: Participant2State) -> Participant2State:
        record = state["record"]
        result = self._scoring.calculate_match(record.participant1.selection, record.participant2.selection)
        logger.info("Session %s scored %d", record.session_id, result.overall_score)
        state["record"] = replace(record, match_result=result)
        return state

    def _persist_completed(self, state: Participant2State) -> Participant2State:
        record = state["record"]
        self._local_slot.save(record, state["client_id"])
        receipt = self._store.save(record, preferred_id=record.session_id)
        state["receipt"] = receipt
        state["report_link"] = self._links.report_link(receipt)
        return state

    # resolution nodes

    def _resolve(self, state: ResolutionState) -> ResolutionState:
        resolved = self._resolver.resolve(state["params"], state["client_id"])
        state["resolved"] = resolved
        state["record"] = resolved.record if resolved else None
        state["stage"] = HandoffStage.LINK_RESOLVED if resolved else HandoffStage.WELCOME
        return state

    def _route_resolved(self, state: ResolutionState) -> str:
        record = state["record"]
        if record is None or record.participant1 is None:
            return "no_session"
        if record.participant2 is None:
            return "await_participant2"
        if record.match_result is None:
            return "rescore"
        return "show_results"

    def _no_session(self, state: ResolutionState) -> ResolutionState:
        state["record"] = None
        state["stage"] = HandoffStage.WELCOME
        return state

    def _await_participant2(self, state: ResolutionState) -> ResolutionState:
        record = state["record"]
        state["stage"] = (
            HandoffStage.PARTICIPANT2_FILLING if record.participant2_name else HandoffStage.NAMES_ENTERED
        )
        return state

    def _rescore(self, state: ResolutionState) -> ResolutionState:
        record = state["record"]
        logger.info("Session %s has both selections but no stored result, scoring it", record.session_id)
        result = self._scoring.calculate_match(record.participant1.selection, record.participant2.selection)
        state["record"] = replace(record, match_result=result)
        return state

    def _show_results(self, state: ResolutionState) -> ResolutionState:
        state["stage"] = HandoffStage.RESULTS_READY
        return state

    # transitions

    def start(self, params: Mapping[str, str], client_id: str = DEFAULT_CLIENT_ID) -> Transition:
        """Resolve an inbound link; no usable session lands on WELCOME."""
        result = self._resolution_graph.invoke(
            {
                "client_id": client_id,
                "params": dict(params),
                "resolved": None,
                "stage": HandoffStage.WELCOME,
                "record": None,
            }
        )
        record = result["record"]
        if record is None:
            return Transition(HandoffState(), fired=False, reason="no session found")

        participant2 = record.participant2
        state = HandoffState(
            stage=result["stage"],
            participant1_name=record.participant1.name,
            participant2_name=participant2.name if participant2 else (record.participant2_name or ""),
            record=record,
        )
        logger.info("Link resolved session %s into stage %s", record.session_id, state.stage.value)
        return Transition(state, fired=True)

    def enter_names(self, state: HandoffState, participant1_name: str, participant2_name: str) -> Transition:
        if state.stage is not HandoffStage.WELCOME:
            return Transition(state, False, f"names cannot be entered in stage {state.stage.value}")
        first = (participant1_name or "").strip()
        second = (participant2_name or "").strip()
        if not first or not second:
            return Transition(state, False, "both names are required")
        named = HandoffState(stage=HandoffStage.NAMES_ENTERED, participant1_name=first, participant2_name=second)
        return Transition(replace(named, stage=HandoffStage.PARTICIPANT1_FILLING), True)

    def submit_participant1(
        self,
        state: HandoffState,
        selection: Iterable[WeightedChoice],
        client_id: str = DEFAULT_CLIENT_ID,
    ) -> Transition:
        if state.stage is not HandoffStage.PARTICIPANT1_FILLING:
            return Transition(state, False, f"participant 1 cannot submit in stage {state.stage.value}")
        choices = normalize_selection(selection)
        if not choices:
            return Transition(state, False, "selection is empty")

        session_id = state.record.session_id if state.record else session_codec.generate_session_id()
        result = self._participant1_graph.invoke(
            {
                "client_id": client_id,
                "participant1_name": state.participant1_name,
                "participant2_name": state.participant2_name,
                "selection": choices,
                "session_id": session_id,
                "record": None,
                "receipt": None,
                "share_link": "",
            }
        )
        logger.info("Participant 1 submitted session %s via %s", session_id, result["receipt"].transport.value)
        return Transition(
            replace(
                state,
                stage=HandoffStage.AWAITING_SHARE,
                record=result["record"],
                share_link=result["share_link"],
            ),
            True,
        )

    def continue_locally(self, state: HandoffState) -> Transition:
        if state.stage is not HandoffStage.AWAITING_SHARE or state.record is None:
            return Transition(state, False, "nothing is waiting for participant 2")
        return Transition(replace(state, stage=HandoffStage.PARTICIPANT2_FILLING), True)

    def enter_participant2_name(self, state: HandoffState, name: str) -> Transition:
        if state.stage is not HandoffStage.NAMES_ENTERED or state.record is None:
            return Transition(state, False, "participant 2 name is not expected now")
        cleaned = (name or "").strip()
        if not cleaned:
            return Transition(state, False, "participant 2 name is required")
        return Transition(
            replace(
                state,
                stage=HandoffStage.PARTICIPANT2_FILLING,
                participant2_name=cleaned,
                record=replace(state.record, participant2_name=cleaned),
            ),
            True,
        )

    def submit_participant2(
        self,
        state: HandoffState,
        selection: Iterable[WeightedChoice],
        client_id: str = DEFAULT_CLIENT_ID,
    ) -> Transition:
        if state.stage is not HandoffStage.PARTICIPANT2_FILLING or state.record is None:
            return Transition(state, False, f"participant 2 cannot submit in stage {state.stage.value}")
        if state.record.participant1 is None:
            return Transition(state, False, "session has no participant 1")
        choices = normalize_selection(selection)
        if not choices:
            return Transition(state, False, "selection is empty")
        name = state.participant2_name or state.record.participant2_name or ""
        if not name.strip():
            return Transition(state, False, "participant 2 name is required")

        result = self._participant2_graph.invoke(
            {
                "client_id": client_id,
                "record": state.record,
                "participant2_name": name.strip(),
                "selection": choices,
                "receipt": None,
                "report_link": "",
            }
        )
        return Transition(
            replace(
                state,
                stage=HandoffStage.RESULTS_READY,
                participant2_name=name.strip(),
                record=result["record"],
                report_link=result["report_link"],
            ),
            True,
        )

    def share_results(self, state: HandoffState) -> Transition:
        if state.stage is not HandoffStage.RESULTS_READY or state.record is None:
            return Transition(state, False, "there are no results to share")
        receipt = self._store.save(state.record, preferred_id=state.record.session_id)
        return Transition(replace(state, report_link=self._links.report_link(receipt)), True)

    def reset(self, state: HandoffState, client_id: str = DEFAULT_CLIENT_ID) -> Transition:
        self._local_slot.clear(client_id)
        if state.record is not None:
            logger.info("Reset session %s", state.record.session_id)
        return Transition(HandoffState(), True)
