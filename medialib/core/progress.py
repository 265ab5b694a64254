"""
Terminal progress rendering for sync runs, using tqdm.

The sync engine reports SyncProgress events through a plain callback and
knows nothing about terminals. SyncProgressBar is such a callback: it
opens a tqdm bar on the first event carrying a total, moves it after each
batch and closes it when the run finishes.

Log records emitted while a bar is open go through TqdmLoggingHandler
(see medialib.core.logger), so they do not break the bar.

Usage:
    with SyncProgressBar("Syncing") as bar:
        engine.sync_all(on_progress=bar)
"""

from tqdm import tqdm

from medialib.library.models import SyncPhase, SyncProgress


BAR_FORMAT = "{desc} {n}/{total} {bar} {percentage:3.0f}% {postfix}"


class SyncProgressBar:
    """
    Callable progress sink rendering SyncProgress events.

    Attributes:
        description: Label shown left of the bar.
        disable: Render nothing (e.g. when output is not a terminal).
    """

    def __init__(self, description: str = "Syncing", disable: bool = False) -> None:
        self.description = description
        self.disable = disable
        self._bar: tqdm | None = None

    def __enter__(self) -> "SyncProgressBar":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __call__(self, progress: SyncProgress) -> None:
        if progress.phase == SyncPhase.PROCESSING_BATCHES and progress.total > 0:
            if self._bar is None or self._bar.total != progress.total:
                self.close()
                self._bar = tqdm(
                    total=progress.total,
                    desc=self.description,
                    bar_format=BAR_FORMAT,
                    ncols=100,
                    colour='cyan',
                    disable=self.disable,
                )
            self._bar.n = progress.processed
            self._bar.set_postfix_str(progress.folder_id or "")
            self._bar.refresh()
        elif progress.phase in (SyncPhase.RECONCILING, SyncPhase.IDLE):
            self.close()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
