import argparse
import logging

try:
    import chess
except ModuleNotFoundError as exc:
    missing = exc.name or "python-chess"
    raise SystemExit(
        f"Missing dependency: {missing}. Run: pip install -e ."
    ) from exc

try:
    from ursina import Entity, InputField, Sky, Text, Ursina, Vec3, camera, color, destroy, invoke, mouse, time, window
except ModuleNotFoundError as exc:
    missing = exc.name or "ursina"
    raise SystemExit(
        f"Missing dependency: {missing}. Run: pip install -e ."
    ) from exc

try:
    from panda3d.core import loadPrcFileData
except ModuleNotFoundError as exc:
    missing = exc.name or "panda3d"
    raise SystemExit(
        f"Missing dependency: {missing}. Run: pip install -e ."
    ) from exc

from board_core import BoardCoreError, BoardUpdate, Session, SessionConfig
from board_core.logging_config import parse_level, setup_logging
from board_core.rules import EMPTY_SQUARE_CLASS

logger = logging.getLogger(__name__)


def _configure_window() -> None:
    loadPrcFileData("", "win-size 1280 800")
    loadPrcFileData("", "framebuffer-multisample 1")
    loadPrcFileData("", "multisamples 4")


_configure_window()


LIGHT_TILE = color.rgba(100, 248, 255, 200)
DARK_TILE = color.rgba(16, 44, 90, 225)
SELECTED_TILE = color.rgb(255, 145, 92)
PROMOTION_TILE = color.rgb(255, 220, 120)
LEGAL_MARKER = color.rgba(255, 240, 170, 210)
WHITE_PIECE = color.rgb(195, 255, 255)
BLACK_PIECE = color.rgb(255, 90, 210)
ACTIVE_CLOCK = color.rgb(255, 230, 120)
IDLE_CLOCK = color.rgba(185, 238, 255, 200)
CITY_GROUND = color.rgb(7, 10, 18)

BOARD_HEIGHT = 2.35
TICK_SECONDS = 1.0

# Quadrant centers of the promotion square, as (dx, dz) from the tile center.
PROMOTION_OFFSETS = {
    "knight": (-0.25, 0.25),
    "bishop": (0.25, 0.25),
    "rook": (-0.25, -0.25),
    "queen": (0.25, -0.25),
}


class NeonBoard:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.square_tiles = {}
        self.tile_squares = {}
        self.legal_markers = []
        self.piece_entities = []
        self.promotion_entities = []
        self.promotion_armed = None
        self.notice = None

        self.press_square = None
        self.dragging = False
        self.tick_accumulator = 0.0

        self._configure_scene()
        self._build_board()
        self._render()
        self._update_camera()

    def _configure_scene(self) -> None:
        window.title = "Neon Board"
        window.color = color.rgb(3, 6, 14)
        window.fullscreen = False
        window.exit_button.visible = True
        Sky(color=color.rgb(6, 8, 19))

        Entity(
            model="quad",
            scale=(140, 140),
            rotation_x=90,
            y=-1.25,
            color=CITY_GROUND,
        )

        self.status_text = Text(
            text="",
            x=-0.86,
            y=0.46,
            scale=1.1,
            color=color.rgba(185, 238, 255, 255),
            background=True,
        )
        self.controls_text = Text(
            text="Click or drag pieces | U undo  Y redo  P resume clock  R replay  C copy FEN  L clear log",
            x=-0.86,
            y=0.41,
            scale=0.9,
            color=color.rgba(220, 236, 255, 220),
        )
        self.white_clock_text = Text(text="", x=0.52, y=-0.38, scale=1.6, color=IDLE_CLOCK)
        self.black_clock_text = Text(text="", x=0.52, y=0.38, scale=1.6, color=IDLE_CLOCK)
        self.log_text = Text(
            text="",
            x=-0.86,
            y=0.3,
            scale=0.8,
            color=color.rgba(180, 220, 255, 200),
        )
        self.fen_field = InputField(
            default_value=self.session.position,
            character_limit=100,
            y=-0.45,
            scale=(1.2, 0.04),
        )
        self.fen_field.on_submit = self._submit_fen
        self.notice_text = Text(
            text="",
            origin=(0, 0),
            scale=1.6,
            color=color.rgb(255, 120, 120),
            background=True,
            enabled=False,
        )

    def _build_board(self) -> None:
        board_parent = Entity(y=BOARD_HEIGHT)

        Entity(
            parent=board_parent,
            model="cube",
            position=(0, -0.26, 0),
            scale=(10.2, 0.15, 10.2),
            color=color.rgb(12, 23, 52),
        )

        for rank in range(8):
            for file_idx in range(8):
                square = chess.square(file_idx, rank)
                name = chess.square_name(square)
                x, z = self._square_to_world(name)
                tile_color = LIGHT_TILE if (file_idx + rank) % 2 == 1 else DARK_TILE
                tile = Entity(
                    parent=board_parent,
                    model="cube",
                    position=(x, 0, z),
                    scale=(1, 0.07, 1),
                    color=tile_color,
                    collider="box",
                )
                tile.default_color = tile_color
                self.square_tiles[name] = tile
                self.tile_squares[tile] = name

    @staticmethod
    def _square_to_world(name: str) -> tuple[float, float]:
        square = chess.parse_square(name)
        return chess.square_file(square) - 3.5, chess.square_rank(square) - 3.5

    def _world_piece(self, side: str, kind: str, x: float, z: float, size: float = 1.0) -> Entity:
        tone = WHITE_PIECE if side == "white" else BLACK_PIECE
        root = Entity(position=(x, BOARD_HEIGHT + 0.1, z), scale=size)

        Entity(parent=root, model="cube", y=0.05, scale=(0.5, 0.06, 0.5), color=tone)

        if kind == "pawn":
            parts = [
                dict(model="cube", y=0.2, scale=(0.26, 0.2, 0.26)),
                dict(model="sphere", y=0.42, scale=0.23),
            ]
        elif kind == "rook":
            parts = [
                dict(model="cube", y=0.29, scale=(0.38, 0.45, 0.38)),
                dict(model="cube", y=0.56, scale=(0.5, 0.09, 0.5)),
            ]
        elif kind == "knight":
            parts = [
                dict(model="cube", y=0.24, scale=(0.3, 0.3, 0.3)),
                dict(model="cube", y=0.51, scale=(0.2, 0.42, 0.2), rotation_x=-17),
                dict(model="sphere", y=0.67, scale=0.19),
            ]
        elif kind == "bishop":
            parts = [
                dict(model="cube", y=0.34, scale=(0.31, 0.53, 0.31)),
                dict(model="sphere", y=0.65, scale=0.16),
            ]
        elif kind == "queen":
            parts = [
                dict(model="cube", y=0.29, scale=(0.32, 0.36, 0.32)),
                dict(model="sphere", y=0.57, scale=(0.46, 0.29, 0.46)),
                dict(model="sphere", y=0.78, scale=0.16),
            ]
        else:
            parts = [
                dict(model="cube", y=0.3, scale=(0.33, 0.43, 0.33)),
                dict(model="cube", y=0.62, scale=(0.24, 0.24, 0.24)),
                dict(model="cube", y=0.84, scale=(0.08, 0.3, 0.08)),
                dict(model="cube", y=0.84, scale=(0.3, 0.08, 0.08)),
            ]
        for part in parts:
            Entity(parent=root, color=tone, **part)
        return root

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self) -> None:
        view = self.session.view()
        self._refresh_pieces(view.squares)
        self._set_tile_colors(view.selected_square, view.promotion_square)
        self._draw_legal_markers(view.highlights)
        self._refresh_promotion_overlay()
        self._refresh_text(view)

    def _refresh_pieces(self, squares) -> None:
        for piece_entity in self.piece_entities:
            destroy(piece_entity)
        self.piece_entities.clear()

        for index, css_class in enumerate(squares):
            if css_class == EMPTY_SQUARE_CLASS or css_class.endswith("promotion-menu"):
                continue
            side, kind = css_class.split()[1].split("-")
            name = chess.square_name(chess.square(index % 8, 7 - index // 8))
            x, z = self._square_to_world(name)
            self.piece_entities.append(self._world_piece(side, kind, x, z))

    def _set_tile_colors(self, selected, promotion_square) -> None:
        for tile in self.square_tiles.values():
            tile.color = tile.default_color
        if selected is not None:
            self.square_tiles[selected].color = SELECTED_TILE
        if promotion_square is not None:
            self.square_tiles[promotion_square].color = PROMOTION_TILE

    def _clear_legal_markers(self) -> None:
        for marker in self.legal_markers:
            destroy(marker)
        self.legal_markers.clear()

    def _draw_legal_markers(self, targets) -> None:
        self._clear_legal_markers()
        for target in targets:
            x, z = self._square_to_world(target)
            marker = Entity(
                model="sphere",
                position=(x, BOARD_HEIGHT + 0.08, z),
                scale=(0.24, 0.04, 0.24),
                color=LEGAL_MARKER,
            )
            self.legal_markers.append(marker)

    def _refresh_promotion_overlay(self) -> None:
        for entity in self.promotion_entities:
            destroy(entity)
        self.promotion_entities.clear()

        promotion = self.session.promotion
        if promotion is None or self.promotion_armed != promotion.token:
            return
        x, z = self._square_to_world(promotion.square)
        for kind, (dx, dz) in PROMOTION_OFFSETS.items():
            self.promotion_entities.append(self._world_piece(promotion.color, kind, x + dx, z + dz, size=0.45))

    def _refresh_text(self, view) -> None:
        self.status_text.text = view.status or ""
        self.log_text.text = "\n".join(view.log)
        self.white_clock_text.text = f"White {view.white_clock}"
        self.black_clock_text.text = f"Black {view.black_clock}"
        self.white_clock_text.color = ACTIVE_CLOCK if view.active_side == "white" else IDLE_CLOCK
        self.black_clock_text.color = ACTIVE_CLOCK if view.active_side == "black" else IDLE_CLOCK
        if not self.fen_field.active:
            self.fen_field.text = view.fen

    def _apply(self, update: BoardUpdate) -> None:
        if update.promotion_started and self.session.promotion is not None:
            # Arm the overlay after the triggering click or drop has settled.
            invoke(self._arm_promotion, self.session.promotion.token, delay=self.session.config.promotion_delay)
        if update.board_changed or update.selection_changed or update.clock_changed:
            self._render()

    def _arm_promotion(self, token: int) -> None:
        if not self.session.promotion_active(token):
            return
        self.promotion_armed = token
        self._render()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def show_notice(self, message: str) -> None:
        self.notice = message
        self.notice_text.text = f"{message}\n(press any key)"
        self.notice_text.enabled = True

    def _dismiss_notice(self) -> None:
        self.notice = None
        self.notice_text.enabled = False

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _hovered_square(self):
        return self.tile_squares.get(mouse.hovered_entity)

    def _promotion_click(self, square: str) -> BoardUpdate:
        promotion = self.session.promotion
        if self.promotion_armed != promotion.token or mouse.world_point is None:
            return BoardUpdate()
        x, z = self._square_to_world(square)
        fx = mouse.world_point.x - (x - 0.5)
        fy = (z + 0.5) - mouse.world_point.z
        return self.session.choose_at(fx, fy, token=promotion.token)

    def _submit_fen(self) -> None:
        self._apply(self.session.submit_fen(self.fen_field.text))
        self._render()

    def input(self, key: str) -> None:
        if self.notice is not None:
            if key.endswith(" up"):
                return
            self._dismiss_notice()
            return
        if self.fen_field.active:
            return

        if key == "left mouse down":
            self.press_square = self._hovered_square()
            self.dragging = False
        elif key == "left mouse up":
            self._release(self._hovered_square())
        elif key == "u":
            self._apply(self.session.undo())
        elif key == "y":
            self._apply(self.session.redo())
        elif key == "p":
            self._apply(self.session.resume())
        elif key == "r":
            self.promotion_armed = None
            self._apply(self.session.replay())
            self._update_camera()
        elif key == "c":
            fen = self.session.copy_fen()
            logger.info("Current FEN: %s", fen)
            self._render()
        elif key == "l":
            self.session.status.clear()
            self._render()

    def _release(self, square) -> None:
        source, self.press_square = self.press_square, None
        if source is None or square is None:
            self.dragging = False
            return
        if self.dragging:
            self.dragging = False
            self._apply(self.session.drop(source, square))
            return
        promotion = self.session.promotion
        if promotion is not None and square == promotion.square:
            self._apply(self._promotion_click(square))
        else:
            self._apply(self.session.activate(square))

    def _update_camera(self) -> None:
        camera.position = Vec3(0, 17.0 * 0.5 + BOARD_HEIGHT + 0.55, -14.7)
        camera.look_at(Vec3(0, BOARD_HEIGHT + 0.2, 0))

    def update(self) -> None:
        if self.press_square is not None and not self.dragging:
            hovered = self._hovered_square()
            if hovered is not None and hovered != self.press_square:
                self.dragging = True
                self._apply(self.session.drag_start(self.press_square))

        if self.notice is not None:
            return
        self.tick_accumulator += time.dt
        while self.tick_accumulator >= TICK_SECONDS:
            self.tick_accumulator -= TICK_SECONDS
            self._apply(self.session.tick())


game = None


def input(key: str) -> None:
    if game is not None:
        game.input(key)


def update() -> None:
    if game is not None:
        game.update()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Neon Board: interactive two-player chess board.")
    parser.add_argument("--fen", default=chess.STARTING_FEN, help="Starting position in FEN.")
    parser.add_argument("--minutes", type=float, default=10.0, help="Clock allotment per side, in minutes.")
    parser.add_argument("--log-file", default=None, help="Optional path of a log file.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...).")
    return parser.parse_args()


def main() -> None:
    global game
    args = parse_args()
    try:
        setup_logging(args.log_file, parse_level(args.log_level))
        config = SessionConfig.from_minutes(args.minutes, initial_fen=args.fen)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    app = Ursina()
    notices = []
    try:
        session = Session(config=config, notify=notices.append)
    except BoardCoreError as exc:
        raise SystemExit(str(exc)) from exc
    game = NeonBoard(session)
    session.status.notify = game.show_notice
    for message in notices:
        game.show_notice(message)
    app.run()


if __name__ == "__main__":
    main()
