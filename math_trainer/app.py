"""Pygame UI shell for the Math Trainer.

Screens:
- Main menu (start a drill, settings, history, quit)
- Settings (operand range, problem count, per-problem timer, auto-next, shuffle)
- Drill (typed answers, Enter submits, Right arrow advances, Esc stops)
- History (recent sessions, CSV export, clear)

Deterministic problem/session/timer/persistence logic lives in math_trainer/*
(core modules); this module only renders and relays key presses.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .clock import ManualScheduler, RealClock
from .export import write_history_csv
from .persistence import HistoryStore, open_history_store
from .problems import ProblemGenerator, SessionConfig, seed_from_env
from .results import SessionRecord, utc_now
from .session import DrillSnapshot, SessionController, SessionPhase

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
OK_BG = (36, 120, 64)
BAD_BG = (150, 40, 48)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str
    action: Callable[[], None]


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def _draw_frame(surface: pygame.Surface, title: str, title_font: pygame.font.Font) -> pygame.Rect:
    w, h = surface.get_size()
    surface.fill(BG)
    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)
    surface.blit(title_font.render(title, True, TEXT_MAIN), (frame.x + 24, frame.y + 18))
    return frame


def _draw_lines(
    surface: pygame.Surface,
    font: pygame.font.Font,
    lines: list[str],
    *,
    x: int,
    y: int,
    color: tuple[int, int, int] = TEXT_MAIN,
    step: int = 32,
) -> int:
    for line in lines:
        surface.blit(font.render(line, True, color), (x, y))
        y += step
    return y


def status_line(snap: DrillSnapshot) -> str:
    parts = [f"Problem {snap.index + 1} / {snap.total}", f"Score: {snap.score}"]
    if snap.elapsed_s is not None:
        parts.append(f"Elapsed: {snap.elapsed_s}s")
    parts.append(f"Since start: {snap.run_time_s}s")
    return "    ".join(parts)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._activate()
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._back()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def _activate(self) -> None:
        if not self._items:
            return
        self._items[self._selected].action()

    def _back(self) -> None:
        if self._is_root:
            self._app.quit()
        else:
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        frame = _draw_frame(surface, self._title, self._title_font)
        y = frame.y + 90
        for i, item in enumerate(self._items):
            row = pygame.Rect(frame.x + 24, y - 6, frame.w - 48, 38)
            if i == self._selected:
                pygame.draw.rect(surface, ACTIVE_BG, row)
                color = ACTIVE_TEXT
            else:
                color = TEXT_MAIN
            surface.blit(self._item_font.render(item.label, True, color), (row.x + 12, y))
            y += 46
        hint = self._hint_font.render("Up/Down to select, Enter to open, Esc to go back", True, TEXT_MUTED)
        surface.blit(hint, (frame.x + 24, frame.bottom - 34))


@dataclass(slots=True)
class _Field:
    label: str
    attr: str
    step: int = 1
    lo: int | None = None


class SettingsScreen:
    """Edits the shared drill configuration in place via ``dataclasses.replace``."""

    _FIELDS = (
        _Field("Minimum operand", "min_operand"),
        _Field("Maximum operand", "max_operand"),
        _Field("Number of problems", "count", lo=0),
        _Field("Timer per problem (s)", "time_per_problem_s", lo=0),
        _Field("Auto-advance", "auto_next"),
        _Field("Shuffle problems", "shuffle"),
    )

    def __init__(self, app: App, *, settings: "DrillSettings") -> None:
        self._app = app
        self._settings = settings
        self._selected = 0
        self._title_font = pygame.font.Font(None, 42)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._app.pop()
        elif event.key == pygame.K_UP:
            self._selected = (self._selected - 1) % len(self._FIELDS)
        elif event.key == pygame.K_DOWN:
            self._selected = (self._selected + 1) % len(self._FIELDS)
        elif event.key == pygame.K_LEFT:
            self._adjust(-1)
        elif event.key == pygame.K_RIGHT:
            self._adjust(1)
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._adjust(1)

    def _adjust(self, direction: int) -> None:
        fld = self._FIELDS[self._selected]
        cfg = self._settings.config
        value = getattr(cfg, fld.attr)
        if isinstance(value, bool):
            new_value: int | bool = not value
        else:
            new_value = int(value) + direction * fld.step
            if fld.lo is not None:
                new_value = max(fld.lo, new_value)
        self._settings.config = dataclasses.replace(cfg, **{fld.attr: new_value})

    def render(self, surface: pygame.Surface) -> None:
        frame = _draw_frame(surface, "Settings", self._title_font)
        font = self._app.font
        cfg = self._settings.config
        y = frame.y + 90
        for i, fld in enumerate(self._FIELDS):
            value = getattr(cfg, fld.attr)
            shown = ("On" if value else "Off") if isinstance(value, bool) else str(value)
            color = ACTIVE_TEXT if i == self._selected else TEXT_MAIN
            if i == self._selected:
                pygame.draw.rect(surface, ACTIVE_BG, pygame.Rect(frame.x + 24, y - 6, frame.w - 48, 38))
            surface.blit(font.render(fld.label, True, color), (frame.x + 36, y))
            surface.blit(font.render(shown, True, color), (frame.right - 160, y))
            y += 46
        if cfg.min_operand > cfg.max_operand:
            warn = self._hint_font.render("Minimum is above maximum; bounds will be swapped.", True, TEXT_MUTED)
            surface.blit(warn, (frame.x + 24, frame.bottom - 60))
        hint = self._hint_font.render("Up/Down select, Left/Right change, Enter toggles, Esc back", True, TEXT_MUTED)
        surface.blit(hint, (frame.x + 24, frame.bottom - 34))


class DrillScreen:
    """Runs one drill session through the controller.

    The scheduler is pumped once per rendered frame, which drives the
    per-problem countdown and the delayed auto-advance.
    """

    def __init__(
        self,
        app: App,
        *,
        controller: SessionController,
        scheduler: ManualScheduler,
        config: SessionConfig,
    ) -> None:
        self._app = app
        self._controller = controller
        self._scheduler = scheduler
        self._title_font = pygame.font.Font(None, 42)
        self._big_font = pygame.font.Font(None, 72)
        self._hint_font = pygame.font.Font(None, 22)
        self._controller.start(config)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if self._controller.phase is SessionPhase.IDLE:
            # Summary shown; any key returns to the menu.
            self._app.pop()
            return

        if event.key == pygame.K_ESCAPE:
            self._controller.stop("user")
            return
        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._controller.submit_answer()
            return
        if event.key == pygame.K_RIGHT:
            self._controller.advance()
            return

        st = self._controller.state
        if st is None:
            return
        text = st.pending_answer
        if event.key in (pygame.K_BACKSPACE, pygame.K_DELETE):
            text = text[:-1]
        elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            if text == "":
                text = "-"
        elif event.unicode and event.unicode.isdigit() and len(text) < 9:
            text += event.unicode
        else:
            return
        self._controller.set_pending_answer(text)

    def render(self, surface: pygame.Surface) -> None:
        self._scheduler.run_due()
        snap = self._controller.snapshot()
        frame = _draw_frame(surface, "Addition Drill", self._title_font)
        if snap.phase is SessionPhase.IDLE:
            self._render_summary(surface, frame, snap)
        else:
            self._render_running(surface, frame, snap)

    def _render_running(self, surface: pygame.Surface, frame: pygame.Rect, snap: DrillSnapshot) -> None:
        font = self._app.font
        if snap.total == 0:
            _draw_lines(surface, font, ["Done - no problems.", "Press Esc to stop."], x=frame.x + 40, y=frame.y + 110)
            return

        problem = self._big_font.render(f"{snap.prompt}{snap.pending_answer}", True, TEXT_MAIN)
        surface.blit(problem, (frame.centerx - problem.get_width() // 2, frame.y + 110))

        status_surf = font.render(status_line(snap), True, TEXT_MUTED)
        surface.blit(status_surf, (frame.centerx - status_surf.get_width() // 2, frame.y + 200))

        if snap.feedback is not None:
            if snap.feedback.ok:
                msg, bg = "Correct!", OK_BG
            elif snap.feedback.timed_out:
                msg, bg = f"Time is up. Correct answer: {snap.feedback.correct}", BAD_BG
            else:
                msg, bg = f"Incorrect. Correct answer: {snap.feedback.correct}", BAD_BG
            msg_surf = font.render(msg, True, TEXT_MAIN)
            box = msg_surf.get_rect(center=(frame.centerx, frame.y + 270)).inflate(30, 16)
            pygame.draw.rect(surface, bg, box)
            surface.blit(msg_surf, msg_surf.get_rect(center=box.center))

        hint = self._hint_font.render("Enter to submit, Right arrow for next problem, Esc to stop", True, TEXT_MUTED)
        surface.blit(hint, (frame.x + 24, frame.bottom - 34))

    def _render_summary(self, surface: pygame.Surface, frame: pygame.Rect, snap: DrillSnapshot) -> None:
        record = snap.last_record
        lines = ["Session complete", ""]
        if record is not None:
            lines.append(f"Solved: {record.solved} / {record.total}")
            lines.append(f"Duration: {record.duration_s}s")
            lines.append(f"Ended: {'finished' if record.reason == 'finished' else 'stopped'}")
        lines += ["", "Press any key to return to the menu"]
        _draw_lines(surface, self._app.font, lines, x=frame.x + 40, y=frame.y + 90, step=36)


class HistoryScreen:
    _VISIBLE = 9

    def __init__(self, app: App, *, controller: SessionController, export_dir: Path) -> None:
        self._app = app
        self._controller = controller
        self._export_dir = export_dir
        self._status: str | None = None
        self._offset = 0
        self._title_font = pygame.font.Font(None, 42)
        self._row_font = pygame.font.Font(None, 28)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            self._status = None
            self._app.pop()
        elif event.key == pygame.K_e:
            self._export()
        elif event.key == pygame.K_c:
            self._controller.clear_history()
            self._offset = 0
            self._status = "History cleared."
        elif event.key == pygame.K_UP:
            self._scroll(-1)
        elif event.key == pygame.K_DOWN:
            self._scroll(1)
        elif event.key == pygame.K_PAGEUP:
            self._scroll(-self._VISIBLE)
        elif event.key == pygame.K_PAGEDOWN:
            self._scroll(self._VISIBLE)

    def _scroll(self, delta: int) -> None:
        max_offset = max(0, len(self._controller.history) - self._VISIBLE)
        self._offset = min(max_offset, max(0, self._offset + delta))

    def visible_records(self) -> list[SessionRecord]:
        history = self._controller.history
        self._offset = min(self._offset, max(0, len(history) - self._VISIBLE))
        return history[self._offset : self._offset + self._VISIBLE]

    def _export(self) -> None:
        history = self._controller.history
        if not history:
            self._status = "Nothing to export."
            return
        try:
            path = write_history_csv(history, directory=self._export_dir, now=utc_now())
        except OSError as exc:
            logger.warning("CSV export failed: %s", exc)
            self._status = "Export failed."
            return
        logger.info("Exported %d sessions to %s", len(history), path)
        self._status = f"Exported to {path.name}"

    def render(self, surface: pygame.Surface) -> None:
        history = self._controller.history
        frame = _draw_frame(surface, f"History (last {len(history)})", self._title_font)
        if not history:
            rows = ["History is empty."]
        else:
            shown = self.visible_records()
            rows = [
                f"{r.date[:19].replace('T', ' ')}    {r.solved}/{r.total}    {r.duration_s}s    {r.reason}"
                for r in shown
            ]
            if len(history) > self._VISIBLE:
                rows.append(f"({self._offset + 1}-{self._offset + len(shown)} of {len(history)})")
        y = _draw_lines(surface, self._row_font, rows, x=frame.x + 36, y=frame.y + 80, step=30)
        if self._status:
            surface.blit(self._row_font.render(self._status, True, TEXT_MUTED), (frame.x + 36, y + 12))
        hint = self._hint_font.render("Up/Down scroll, E export CSV, C clear history, Esc back", True, TEXT_MUTED)
        surface.blit(hint, (frame.x + 24, frame.bottom - 34))


@dataclass(slots=True)
class DrillSettings:
    config: SessionConfig = dataclasses.field(default_factory=SessionConfig)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    history: HistoryStore | None = None,
    export_dir: Path | None = None,
) -> int:
    pygame.init()

    pygame.display.set_caption("Math Trainer - addition")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    real_clock = RealClock()
    scheduler = ManualScheduler(real_clock)
    generator = ProblemGenerator(seed_from_env())
    logger.info("Problem seed: %d", generator.seed)
    controller = SessionController(
        clock=real_clock,
        scheduler=scheduler,
        history=history if history is not None else open_history_store(),
        generator=generator,
    )
    settings = DrillSettings()

    def open_drill() -> None:
        app.push(DrillScreen(app, controller=controller, scheduler=scheduler, config=settings.config))

    settings_screen = SettingsScreen(app, settings=settings)
    history_screen = HistoryScreen(
        app,
        controller=controller,
        export_dir=export_dir if export_dir is not None else Path.cwd(),
    )

    main_items = [
        MenuItem("Start drill", open_drill),
        MenuItem("Settings", lambda: app.push(settings_screen)),
        MenuItem("History", lambda: app.push(history_screen)),
        MenuItem("Quit", app.quit),
    ]

    app.push(MenuScreen(app, "Math Trainer - addition", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        # Closing the window mid-run counts as a user stop.
        controller.stop("user")
        pygame.quit()

    return 0
