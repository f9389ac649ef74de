"""Tests for board_core.session — input state machine, promotion, history and clock arbitration."""

from __future__ import annotations

import chess
import pytest

from board_core import BoardUpdate, InputState, RulesEngineError, Session, SessionConfig, Side
from board_core.rules import render_index
from board_core.session import promotion_choice_at

AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"
WHITE_PROMOTION = "4k3/P7/8/8/8/8/7P/4K3 w - - 0 1"
BLACK_PROMOTION = "4k3/8/8/8/8/8/p6P/4K3 b - - 0 1"
BARE_KINGS = "8/8/8/8/8/8/8/K6k w - - 0 1"
ROOK_CAPTURE_DRAW = "8/8/8/8/8/8/1r6/K6k w - - 0 1"


def _session(fen: str = chess.STARTING_FEN, seconds: int = 600, notices=None) -> Session:
    config = SessionConfig(starting_seconds=seconds, initial_fen=fen)
    return Session(config=config, notify=notices.append if notices is not None else None)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    def test_initial_view(self):
        session = _session()
        view = session.view()
        assert view.fen == chess.STARTING_FEN
        assert view.status == "White to move"
        assert not view.can_undo
        assert not view.can_redo
        assert view.white_clock == "10:00"
        assert view.active_side is None
        assert session.state is InputState.IDLE
        assert len(session.history) == 1

    def test_unrenderable_initial_position(self):
        with pytest.raises(RulesEngineError):
            _session(fen="garbage")

    def test_replay_resets_everything(self):
        session = _session()
        session.play("e2e4")
        session.activate("e7")
        update = session.replay()
        assert update.board_changed
        assert session.history.positions == [chess.STARTING_FEN]
        assert session.selected_square is None
        assert not session.clock.running
        assert session.status.entries == ["White to move"]

    def test_teardown_stops_clock(self):
        session = _session()
        session.play("e2e4")
        session.teardown()
        assert not session.clock.running


# ---------------------------------------------------------------------------
# Click selection
# ---------------------------------------------------------------------------

class TestSelection:
    def test_select_own_piece_highlights_targets(self):
        session = _session()
        update = session.activate("e2")
        assert update.selection_changed
        assert update.focus_square == "e2"
        assert session.state is InputState.SELECTED
        assert sorted(session.highlights) == ["e3", "e4"]

    @pytest.mark.parametrize("square", ["e4", "e7", "z9"])
    def test_unmovable_square_stays_idle(self, square: str):
        session = _session()
        update = session.activate(square)
        assert update == BoardUpdate()
        assert session.state is InputState.IDLE
        assert session.highlights == ()

    def test_reselecting_same_square_toggles_off(self):
        session = _session()
        session.activate("e2")
        update = session.activate("e2")
        assert update.selection_changed
        assert not update.moved
        assert session.state is InputState.IDLE
        assert session.highlights == ()
        assert session.history.positions == [chess.STARTING_FEN]

    def test_rejected_move_selects_new_source(self):
        session = _session()
        session.activate("e2")
        update = session.activate("d2")
        assert not update.moved
        assert session.selected_square == "d2"
        assert len(session.history) == 1

    def test_rejected_move_onto_empty_square_clears(self):
        session = _session()
        session.activate("e2")
        update = session.activate("e5")
        assert update.selection_changed
        assert session.state is InputState.IDLE
        assert session.highlights == ()
        assert len(session.history) == 1


# ---------------------------------------------------------------------------
# Committing moves
# ---------------------------------------------------------------------------

class TestCommit:
    def test_click_move_commits(self):
        session = _session()
        session.activate("e2")
        update = session.activate("e4")
        assert update.moved
        assert update.history_changed
        assert session.position == AFTER_E4
        assert session.state is InputState.IDLE

    def test_commit_switches_clock_and_logs_state(self):
        session = _session()
        session.play("e2e4")
        assert session.status.latest == "Black to move"
        assert session.clock.active_side is Side.BLACK
        assert session.clock.running

    def test_clock_follows_side_to_move(self):
        session = _session()
        session.play("e2e4")
        session.play("e7e5")
        assert session.clock.active_side is Side.WHITE

    def test_checkmate_alerts_and_stops_clock(self):
        notices = []
        session = _session(notices=notices)
        for move in ("f2f3", "e7e5", "g2g4", "d8h4"):
            session.play(move)
        assert notices == ["Checkmate: Black wins"]
        assert not session.clock.running
        assert session.view().status == "Checkmate: Black wins"
        assert session.finished

    def test_draw_commit_stops_clock_and_locks_input(self):
        notices = []
        session = _session(ROOK_CAPTURE_DRAW, notices=notices)
        session.play("a1b2")
        assert notices == ["Draw: insufficient material"]
        assert not session.clock.running
        assert session.finished

        # Kings still have legal moves, but the game is over.
        assert session.activate("h1") == BoardUpdate()
        assert session.drop("h1", "h2") == BoardUpdate()
        assert session.resume() == BoardUpdate()
        with pytest.raises(ValueError):
            session.play("h1h2")
        assert len(session.history) == 2
        assert notices == ["Draw: insufficient material"]

    def test_drawn_start_position_locks_input(self):
        notices = []
        session = _session(BARE_KINGS, notices=notices)
        assert session.finished
        assert session.activate("a1") == BoardUpdate()
        with pytest.raises(ValueError):
            session.play("a1a2")
        assert len(session.history) == 1
        assert notices == ["Draw: insufficient material"]

    def test_undo_out_of_draw_reopens_board(self):
        session = _session(ROOK_CAPTURE_DRAW)
        session.play("a1b2")
        session.undo()
        assert not session.finished
        assert session.activate("a1").selection_changed
        session.redo()
        assert session.finished

    def test_view_flags_after_move(self):
        session = _session()
        session.play("e2e4")
        view = session.view()
        assert view.can_undo
        assert not view.can_redo
        assert view.squares[render_index("e4")] == "piece white-pawn"
        assert view.squares[render_index("e2")] == "empty-square"


# ---------------------------------------------------------------------------
# Drag and drop
# ---------------------------------------------------------------------------

class TestDragAndDrop:
    def test_drag_start_selects_source(self):
        session = _session()
        session.activate("g1")
        update = session.drag_start("e2")
        assert update.selection_changed
        assert session.selected_square == "e2"

    def test_drop_commits(self):
        session = _session()
        session.drag_start("e2")
        update = session.drop("e2", "e4")
        assert update.moved
        assert session.position == AFTER_E4

    def test_drop_without_drag_start(self):
        session = _session()
        assert session.drop("g1", "f3").moved

    def test_drop_on_illegal_square(self):
        session = _session()
        session.drag_start("e2")
        update = session.drop("e2", "e5")
        assert not update.moved
        assert session.state is InputState.IDLE
        assert len(session.history) == 1

    def test_drop_back_on_source(self):
        session = _session()
        session.drag_start("e2")
        update = session.drop("e2", "e2")
        assert not update.moved
        assert session.state is InputState.IDLE


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------

class TestPromotion:
    @pytest.mark.parametrize(
        "x, y, kind",
        [(0.1, 0.1, "knight"), (0.9, 0.1, "bishop"), (0.1, 0.9, "rook"), (0.9, 0.9, "queen"), (0.5, 0.5, "queen")],
    )
    def test_quadrants(self, x: float, y: float, kind: str):
        assert promotion_choice_at(x, y) == kind

    def test_pawn_to_last_rank_waits_for_choice(self):
        session = _session(WHITE_PROMOTION)
        session.activate("a7")
        update = session.activate("a8")
        assert update.promotion_started
        assert not update.moved
        assert session.state is InputState.PROMOTING
        assert len(session.history) == 1

    def test_overlay_rendering(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        view = session.view()
        assert view.promotion_square == "a8"
        assert view.squares[render_index("a7")] == "empty-square"
        assert view.squares[render_index("a8")] == "piece white-promotion-menu"

    def test_upper_left_quadrant_commits_knight(self):
        session = _session(WHITE_PROMOTION)
        session.activate("a7")
        session.activate("a8")
        update = session.choose_at(0.2, 0.3)
        assert update.moved
        assert session.position == "N3k3/8/8/8/8/8/7P/4K3 b - - 0 1"
        assert session.view().squares[render_index("a8")] == "piece white-knight"
        assert session.state is InputState.IDLE
        assert session.clock.active_side is Side.BLACK

    def test_black_promotion_uses_lowercase(self):
        session = _session(BLACK_PROMOTION)
        session.drop("a2", "a1")
        session.choose_at(0.9, 0.9)
        assert session.position == "4k3/8/8/8/8/8/7P/q3K3 w - - 0 2"
        assert session.view().squares[render_index("a1")] == "piece black-queen"

    def test_click_on_promoting_square_is_ignored(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        assert session.activate("a8") == BoardUpdate()
        assert session.state is InputState.PROMOTING

    def test_click_elsewhere_cancels_and_reselects(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        update = session.activate("h2")
        assert update.promotion_cancelled
        assert session.promotion is None
        assert session.selected_square == "h2"
        assert session.view().squares[render_index("a7")] == "piece white-pawn"
        assert len(session.history) == 1

    def test_drag_start_cancels(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        update = session.drag_start("h2")
        assert update.promotion_cancelled
        assert session.promotion is None

    def test_stale_choice_is_ignored(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        stale = session.promotion.token
        session.activate("h2")
        assert session.choose("queen", token=stale) == BoardUpdate()
        assert len(session.history) == 1

    def test_choice_for_previous_promotion_is_ignored(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        stale = session.promotion.token
        session.activate("h2")
        session.drop("a7", "a8")
        current = session.promotion.token
        assert current != stale
        assert not session.promotion_active(stale)
        assert session.choose("queen", token=stale) == BoardUpdate()
        assert session.state is InputState.PROMOTING
        assert session.choose("queen", token=current).moved

    def test_unknown_piece_kind(self):
        session = _session(WHITE_PROMOTION)
        session.drop("a7", "a8")
        with pytest.raises(ValueError):
            session.choose("king")

    def test_choice_without_promotion(self):
        session = _session()
        assert session.choose("queen") == BoardUpdate()


# ---------------------------------------------------------------------------
# Undo / redo
# ---------------------------------------------------------------------------

class TestHistoryNavigation:
    def test_undo_restores_previous_position(self):
        session = _session()
        session.play("e2e4")
        before = session.position
        session.play("e7e5")
        update = session.undo()
        assert update.history_changed
        assert session.position == before

    def test_redo_restores_undone_position(self):
        session = _session()
        session.play("e2e4")
        session.play("e7e5")
        after = session.position
        session.undo()
        session.redo()
        assert session.position == after

    def test_navigation_fails_silently_at_ends(self):
        session = _session()
        assert session.undo() == BoardUpdate()
        assert session.redo() == BoardUpdate()

    def test_move_after_undo_truncates(self):
        session = _session()
        session.play("e2e4")
        session.play("e7e5")
        session.undo()
        session.play("d7d5")
        assert len(session.history) == 3
        assert not session.view().can_redo
        assert session.redo() == BoardUpdate()

    def test_undo_stops_clock(self):
        session = _session()
        session.play("e2e4")
        session.undo()
        assert not session.clock.running
        assert session.clock.active_side is None

    def test_undo_relogs_state(self):
        session = _session()
        session.play("e2e4")
        session.play("e7e5")
        session.undo()
        assert session.status.entries == ["Black to move"]

    def test_undo_cancels_pending_promotion(self):
        session = _session(WHITE_PROMOTION)
        session.play("h2h3")
        session.play("e8d8")
        session.drop("a7", "a8")
        session.undo()
        assert session.promotion is None

    def test_resume_after_undo(self):
        session = _session()
        session.play("e2e4")
        session.undo()
        update = session.resume()
        assert update.clock_changed
        assert session.clock.active_side is Side.WHITE
        assert session.clock.running


# ---------------------------------------------------------------------------
# Clock ticks and timeout
# ---------------------------------------------------------------------------

class TestTimeout:
    def test_ticks_only_touch_side_to_move(self):
        session = _session()
        session.play("e2e4")
        session.tick()
        assert session.view().black_clock == "09:59"
        assert session.view().white_clock == "10:00"

    def test_tick_before_first_move_is_ignored(self):
        session = _session()
        assert session.tick() == BoardUpdate()

    def test_timeout_recorded_once(self):
        notices = []
        session = _session(seconds=2, notices=notices)
        session.play("e2e4")
        session.play("e7e5")
        session.tick()
        session.tick()
        assert session.view().white_clock == "00:00"
        update = session.tick()
        assert update.timed_out
        for _ in range(3):
            session.tick()
        assert notices == ["Timeout: Black wins"]
        assert session.status.alerts == ["Timeout: Black wins"]
        assert not session.clock.running
        assert session.finished

    def test_input_blocked_after_timeout(self):
        session = _session(seconds=0)
        session.play("e2e4")
        session.tick()
        assert session.activate("e7") == BoardUpdate()
        assert session.drop("e7", "e5") == BoardUpdate()
        assert session.resume() == BoardUpdate()
        assert len(session.history) == 2

    def test_timeout_cancels_pending_promotion(self):
        session = _session(WHITE_PROMOTION, seconds=1)
        session.resume()
        session.drop("a7", "a8")
        token = session.promotion.token
        session.tick()
        update = session.tick()
        assert update.promotion_cancelled
        assert session.choose("queen", token=token) == BoardUpdate()
        assert len(session.history) == 1

    def test_replay_clears_timeout(self):
        session = _session(seconds=0)
        session.play("e2e4")
        session.tick()
        session.replay()
        assert not session.finished
        assert not session.clock.timed_out
        assert session.activate("e2").selection_changed


# ---------------------------------------------------------------------------
# FEN entry and copy
# ---------------------------------------------------------------------------

class TestFenEntry:
    @pytest.mark.parametrize("text", ["", "garbage", "8/8/8/8/8/8/8/8 w - - 0 1"])
    def test_invalid_fen_leaves_session_unchanged(self, text: str):
        notices = []
        session = _session(notices=notices)
        session.play("e2e4")
        positions = list(session.history.positions)
        cursor = session.history.cursor
        update = session.submit_fen(text)
        assert update == BoardUpdate()
        assert session.history.positions == positions
        assert session.history.cursor == cursor
        assert session.status.latest == "Invalid FEN!"
        assert notices == []

    def test_valid_fen_replays(self):
        session = _session()
        session.play("e2e4")
        update = session.submit_fen(f"  {WHITE_PROMOTION}  ")
        assert update.board_changed
        assert session.history.positions == [WHITE_PROMOTION]

    def test_copy_fen(self):
        notices = []
        session = _session(notices=notices)
        assert session.copy_fen() == chess.STARTING_FEN
        assert session.status.latest == "FEN Copied!"
        assert notices == []

    def test_log_is_bounded(self):
        session = _session()
        for _ in range(25):
            session.copy_fen()
        assert len(session.view().log) == 10


# ---------------------------------------------------------------------------
# Scripted moves and export
# ---------------------------------------------------------------------------

class TestScriptedInput:
    def test_play_rejects_illegal_move(self):
        session = _session()
        with pytest.raises(ValueError):
            session.play("e2e5")
        assert len(session.history) == 1

    def test_play_requires_promotion_letter(self):
        session = _session(WHITE_PROMOTION)
        with pytest.raises(ValueError, match="promotion"):
            session.play("a7a8")
        assert session.state is InputState.IDLE

    def test_play_promotion(self):
        session = _session(WHITE_PROMOTION)
        assert session.play("a7a8Q").moved
        assert session.view().squares[render_index("a8")] == "piece white-queen"

    def test_export_payload(self):
        session = _session()
        session.play("e2e4")
        session.activate("e7")
        payload = session.export_payload()
        assert payload["fen"] == AFTER_E4
        assert payload["state"] == "selected"
        assert payload["selected_square"] == "e7"
        assert sorted(payload["legal_targets"]) == ["e5", "e6"]
        assert payload["history"] == [chess.STARTING_FEN, AFTER_E4]
        assert payload["cursor"] == 1
        assert payload["clock"]["active"] == "black"
        assert payload["is_finished"] is False
        assert len(payload["squares"]) == 64
