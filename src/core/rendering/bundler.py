"""
Project Bundler
===============

Turns a project entry point into a servable location. Local projects are
copied into a private temporary directory together with their public
directory; serve URLs are passed through untouched.
"""

from typing import Any, List, Optional, Tuple
import asyncio
import shutil
import tempfile
import time
from pathlib import Path

from src.config.logging import get_logger
from src.core.orchestration.cancellation import CancellationToken
from src.core.orchestration.contracts import BundleProgressCallback, BundleResult
from src.models.schemas import BundlingProgress, CopyingState

logger = get_logger(__name__)

IGNORED_NAMES = {".git", "node_modules", "__pycache__", ".DS_Store"}
PUBLIC_DIR_NAME = "public"


class BundleError(Exception):
    """Exception raised when a project cannot be bundled."""

    pass


def _noop() -> None:
    return None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class DirectoryBundler:
    """Bundles a project directory by copying it into a temporary directory."""

    def __init__(self, temp_path: Path, progress_step: float = 0.05):
        self.temp_path = Path(temp_path)
        self.progress_step = progress_step
        self.logger: Any = logger.bind(component="bundler")

    async def bundle(
        self,
        entry_point: str,
        public_dir: Optional[str],
        on_progress: BundleProgressCallback,
        token: CancellationToken,
    ) -> BundleResult:
        """
        Make the project servable.

        Args:
            entry_point: Entry file, project directory or serve URL
            public_dir: Static directory copied next to the bundle
            on_progress: Receives bundling and copying progress
            token: Cancellation token checked between files

        Returns:
            The servable location, the entry path inside it and its cleanup
        """
        if entry_point.startswith(("http://", "https://")):
            self.logger.debug("Entry point is a serve URL, skipping bundling", url=entry_point)
            on_progress(BundlingProgress(progress=1.0, done_in_ms=0), CopyingState(done_in_ms=0))
            return BundleResult(servable_location=entry_point, entry_path="", cleanup=_noop)

        source_dir, entry_path = self._locate(entry_point)
        public_path = self._locate_public_dir(public_dir, source_dir)

        self.temp_path.mkdir(parents=True, exist_ok=True)
        out_dir = Path(tempfile.mkdtemp(prefix="still-bundle-", dir=self.temp_path))
        self.logger.info("Bundling project", source=str(source_dir), out_dir=str(out_dir))

        try:
            start = time.monotonic()
            copying = CopyingState()
            on_progress(BundlingProgress(progress=0.0), copying)

            files = self._collect(source_dir, exclude=public_path)
            last_reported = 0.0
            for index, path in enumerate(files, start=1):
                token.checkpoint("bundle")
                target = out_dir / path.relative_to(source_dir)
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, target)
                progress = index / len(files)
                if progress - last_reported >= self.progress_step and progress < 1.0:
                    last_reported = progress
                    on_progress(BundlingProgress(progress=progress), copying)
                await asyncio.sleep(0)

            bundling = BundlingProgress(progress=1.0, done_in_ms=_elapsed_ms(start))
            on_progress(bundling, copying)

            if public_path is not None:
                copying = await self._copy_public_dir(
                    public_path, out_dir / PUBLIC_DIR_NAME, bundling, on_progress, token
                )
        except BaseException:
            shutil.rmtree(out_dir, ignore_errors=True)
            raise

        def cleanup() -> None:
            shutil.rmtree(out_dir, ignore_errors=True)
            self.logger.debug("Bundle removed", out_dir=str(out_dir))

        self.logger.info(
            "Project bundled", out_dir=str(out_dir), files=len(files), bytes_copied=copying.bytes_copied
        )
        return BundleResult(servable_location=str(out_dir), entry_path=entry_path, cleanup=cleanup)

    def _locate(self, entry_point: str) -> Tuple[Path, str]:
        entry = Path(entry_point).expanduser().resolve()
        if not entry.exists():
            raise BundleError(f"Entry point {entry_point} does not exist")
        if entry.is_dir():
            return entry, ""
        return entry.parent, entry.name

    def _locate_public_dir(self, public_dir: Optional[str], source_dir: Path) -> Optional[Path]:
        if public_dir:
            path = Path(public_dir).expanduser()
            if not path.is_absolute():
                path = source_dir / path
            if not path.is_dir():
                raise BundleError(f"Public directory {public_dir} does not exist")
            return path.resolve()
        default = source_dir / PUBLIC_DIR_NAME
        return default if default.is_dir() else None

    def _collect(self, source_dir: Path, exclude: Optional[Path]) -> List[Path]:
        temp_root = self.temp_path.resolve()
        files = []
        for path in sorted(source_dir.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(source_dir)
            if any(part in IGNORED_NAMES for part in relative.parts):
                continue
            resolved = path.resolve()
            if _is_within(resolved, temp_root):
                continue
            if exclude is not None and _is_within(resolved, exclude):
                continue
            files.append(path)
        return files

    async def _copy_public_dir(
        self,
        public_path: Path,
        target_dir: Path,
        bundling: BundlingProgress,
        on_progress: BundleProgressCallback,
        token: CancellationToken,
    ) -> CopyingState:
        start = time.monotonic()
        bytes_copied = 0
        for path in sorted(public_path.rglob("*")):
            if not path.is_file():
                continue
            token.checkpoint("bundle")
            target = target_dir / path.relative_to(public_path)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            bytes_copied += path.stat().st_size
            on_progress(bundling, CopyingState(bytes_copied=bytes_copied))
            await asyncio.sleep(0)

        copying = CopyingState(bytes_copied=bytes_copied, done_in_ms=_elapsed_ms(start))
        on_progress(bundling, copying)
        return copying


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True
