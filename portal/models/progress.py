from __future__ import annotations

from dataclasses import dataclass, replace

DEFAULT_COMPLETION_THRESHOLD = 90.0


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """One observation from the lecture view (playback tick, scroll, page turn).

    Every field is optional; ``None`` means "not observed this time".
    """

    progress: float | None = None
    current_time: float | None = None
    current_page: int | None = None
    current_slide: int | None = None
    is_completed: bool | None = None

    def __post_init__(self) -> None:
        if self.progress is not None and not 0 <= self.progress <= 100:
            raise ValueError(f"progress must be within [0, 100] (got {self.progress!r})")
        for name in ("current_time", "current_page", "current_slide"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0 (got {value!r})")


@dataclass(frozen=True, slots=True)
class ProgressState:
    """In-memory progress record for one (student, lecture) view."""

    progress: float = 0.0
    current_time: float | None = None
    current_page: int | None = None
    current_slide: int | None = None
    is_completed: bool = False

    @staticmethod
    def initial(
        initial_progress: float = 0.0,
        completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
    ) -> ProgressState:
        return ProgressState(
            progress=initial_progress,
            is_completed=initial_progress >= completion_threshold,
        )

    def to_payload(self) -> dict[str, float | int | bool]:
        """Body for the progress-update endpoint; unset markers are omitted."""
        payload: dict[str, float | int | bool] = {
            "progress": self.progress,
            "isCompleted": self.is_completed,
        }
        if self.current_time is not None:
            payload["currentTime"] = self.current_time
        if self.current_page is not None:
            payload["currentPage"] = self.current_page
        if self.current_slide is not None:
            payload["currentSlide"] = self.current_slide
        return payload

    def to_dict(self) -> dict[str, object]:
        return {
            "progress": self.progress,
            "currentTime": self.current_time,
            "currentPage": self.current_page,
            "currentSlide": self.current_slide,
            "isCompleted": self.is_completed,
        }


def merge_progress(
    state: ProgressState,
    update: ProgressUpdate,
    completion_threshold: float = DEFAULT_COMPLETION_THRESHOLD,
) -> ProgressState:
    """Fold one observation into the current state.

    - progress only moves forward (seeking back never lowers it)
    - is_completed is sticky once true
    - positional markers are last-write-wins
    """
    progress = state.progress
    if update.progress is not None and update.progress > progress:
        progress = update.progress

    is_completed = (
        progress >= completion_threshold
        or bool(update.is_completed)
        or state.is_completed
    )

    return replace(
        state,
        progress=progress,
        current_time=(
            update.current_time if update.current_time is not None else state.current_time
        ),
        current_page=(
            update.current_page if update.current_page is not None else state.current_page
        ),
        current_slide=(
            update.current_slide
            if update.current_slide is not None
            else state.current_slide
        ),
        is_completed=is_completed,
    )
