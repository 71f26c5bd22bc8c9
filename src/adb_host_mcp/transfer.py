"""File transfer over the sync sub-protocol: stat, list, push and pull.

Every file gets its own connection (``host:transport:<serial>`` then
``sync:``), so a recursive transfer can run several files at once on a
bounded pool while each file's bytes stay in order on their own stream.

A failure on one file of a batch is recorded in that file's
``TransferOutcome``; the rest of the batch carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import posixpath
from pathlib import Path
from typing import AsyncIterator, Callable

from .config import AdbContext
from .errors import AdbConnectionError, AdbError, OperationCancelled, ProtocolError, TransferError
from .models.transfer import (
    Direction,
    FileStat,
    TransferOutcome,
    TransferRequest,
    TransferStatus,
)
from .progress import NoOpProgress, ProgressSink
from .protocol.sync import (
    DENT_HEADER_SIZE,
    ID_DATA,
    ID_DONE,
    ID_FAIL,
    ID_LIST,
    ID_OKAY,
    ID_RECV,
    ID_STAT,
    STAT_REPLY_SIZE,
    SYNC_DATA_MAX,
    SYNC_HEADER_SIZE,
    build_data,
    build_done,
    build_path_request,
    build_quit,
    build_send,
    decode_fail_reason,
    parse_dent_header,
    parse_stat_reply,
    parse_sync_header,
)
from .transport.connection import AdbConnection, open_device_connection
from .utils.tasks import gather_all

logger = logging.getLogger(__name__)

PART_SUFFIX = ".part"

ProgressFactory = Callable[[str], ProgressSink]


def _fail_kind(reason: str) -> str:
    text = reason.lower()
    if "permission denied" in text or "read-only" in text:
        return "permission_denied"
    if "no such file" in text or "not found" in text:
        return "remote_missing"
    return "remote_failure"


def _local_stat(path: Path) -> FileStat:
    st = path.stat()
    return FileStat(mode=st.st_mode, size=st.st_size, mtime=int(st.st_mtime))


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def part_path(destination: Path) -> Path:
    """Where an in-flight pull is written before it is renamed into place."""
    return destination.with_name(destination.name + PART_SUFFIX)


def _invalid_path(remote_path: str, error: ValueError) -> TransferError:
    return TransferError(
        "invalid_path", f"Cannot address {remote_path!r}: {error}", path=remote_path
    )


# Builder errors become per-file failures. A ValueError here is either an
# over-long path or a UnicodeEncodeError from an undecodable local name.
def _path_request(command: bytes, remote_path: str) -> bytes:
    try:
        return build_path_request(command, remote_path)
    except ValueError as e:
        raise _invalid_path(remote_path, e) from e


def _send_request(remote_path: str, mode: int) -> bytes:
    try:
        return build_send(remote_path, mode)
    except ValueError as e:
        raise _invalid_path(remote_path, e) from e


# ─── SYNC PRIMITIVES ──────────────────────────────────────────────────
# Each helper runs one request on a connection already in sync mode.


async def sync_stat(conn: AdbConnection, remote_path: str) -> FileStat:
    async with conn.transaction():
        await conn.write(_path_request(ID_STAT, remote_path))
        return parse_stat_reply(await conn.read_exactly(STAT_REPLY_SIZE))


async def sync_list(conn: AdbConnection, remote_path: str) -> list[tuple[str, FileStat]]:
    """List one remote directory, without ``.`` and ``..``."""
    entries = []
    async with conn.transaction():
        await conn.write(_path_request(ID_LIST, remote_path))
        while True:
            command, entry, name_length = parse_dent_header(
                await conn.read_exactly(DENT_HEADER_SIZE)
            )
            if command == ID_DONE:
                break
            name = (await conn.read_exactly(name_length)).decode("utf-8", errors="replace")
            if name in (".", ".."):
                continue
            entries.append((name, entry))
    return entries


async def _read_sync_status(conn: AdbConnection, remote_path: str) -> None:
    command, arg = parse_sync_header(await conn.read_exactly(SYNC_HEADER_SIZE))
    if command == ID_OKAY:
        return
    if command == ID_FAIL:
        reason = decode_fail_reason(await conn.read_exactly(arg))
        raise TransferError(_fail_kind(reason), reason, path=remote_path)
    raise ProtocolError("unexpected_command", f"Expected OKAY or FAIL, got {command!r}")


async def sync_send(
    conn: AdbConnection,
    local_path: Path,
    remote_path: str,
    mode: int,
    mtime: int,
    size: int,
    chunk_size: int,
    progress: ProgressSink,
) -> int:
    """Stream one local file as SEND, DATA..., DONE and wait for OKAY.

    Returns:
        Number of payload bytes sent.
    """
    sent = 0
    async with conn.transaction():
        try:
            handle = open(local_path, "rb")
        except PermissionError as e:
            raise TransferError("permission_denied", str(e), path=str(local_path)) from e

        with handle:
            await conn.write(_send_request(remote_path, mode))
            progress.start(size)
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                await conn.write(build_data(chunk))
                sent += len(chunk)
                progress.update(sent)

        if sent != size:
            # Without DONE the device discards what it received.
            raise TransferError(
                "partial_write",
                f"{local_path} changed during push: sent {sent} of {size} bytes",
                path=str(local_path),
            )
        await conn.write(build_done(mtime))
        await _read_sync_status(conn, remote_path)
    progress.finish()
    return sent


async def sync_recv(
    conn: AdbConnection,
    remote_path: str,
    destination: Path,
    total: int,
    progress: ProgressSink,
) -> int:
    """Receive one remote file into ``destination`` in frame order.

    Returns:
        Number of payload bytes received.
    """
    received = 0
    async with conn.transaction():
        await conn.write(_path_request(ID_RECV, remote_path))
        progress.start(total)
        with open(destination, "wb") as handle:
            while True:
                command, arg = parse_sync_header(await conn.read_exactly(SYNC_HEADER_SIZE))
                if command == ID_DATA:
                    if arg > SYNC_DATA_MAX:
                        raise ProtocolError(
                            "unexpected_command", f"DATA chunk of {arg} bytes exceeds limit"
                        )
                    chunk = await conn.read_exactly(arg)
                    handle.write(chunk)
                    received += len(chunk)
                    progress.update(received)
                elif command == ID_DONE:
                    break
                elif command == ID_FAIL:
                    reason = decode_fail_reason(await conn.read_exactly(arg))
                    raise TransferError(_fail_kind(reason), reason, path=remote_path)
                else:
                    raise ProtocolError(
                        "unexpected_command", f"Unexpected {command!r} during pull"
                    )
    progress.finish()
    return received


# ─── ENGINE ───────────────────────────────────────────────────────────


class FileTransferEngine:
    """Push and pull files on one device.

    Args:
        context: Server address and tunables.
        progress_factory: Called with a file path to get that file's progress
            sink. Defaults to a no-op sink.
    """

    def __init__(
        self,
        context: AdbContext,
        progress_factory: ProgressFactory | None = None,
    ) -> None:
        self._context = context
        self._progress_factory = progress_factory or (lambda _path: NoOpProgress())

    @contextlib.asynccontextmanager
    async def sync_connection(self, serial: str | None) -> AsyncIterator[AdbConnection]:
        """A connection bound to ``serial`` in sync mode, closed on every path."""
        conn = await open_device_connection(self._context, serial)
        try:
            await conn.enter_sync()
            yield conn
            try:
                await conn.write(build_quit())
            except AdbConnectionError as e:
                logger.debug("QUIT not delivered: %s", e)
        except BaseException:
            conn.abort()
            raise
        finally:
            await conn.close()

    async def stat(self, serial: str | None, remote_path: str) -> FileStat:
        async with self.sync_connection(serial) as conn:
            return await sync_stat(conn, remote_path)

    async def list_dir(self, serial: str | None, remote_path: str) -> list[tuple[str, FileStat]]:
        async with self.sync_connection(serial) as conn:
            return await sync_list(conn, remote_path)

    # ─── SINGLE FILE ──────────────────────────────────────────────────

    async def push_file(
        self,
        serial: str | None,
        local_path: str | os.PathLike,
        remote_path: str,
        skip_unchanged: bool = False,
        progress: ProgressSink | None = None,
    ) -> TransferOutcome:
        """Push one regular file.

        A remote path ending in ``/`` or naming an existing directory gets
        the local basename appended.

        Raises:
            TransferError: Local file missing or unreadable, or the device
                refused the write.
            AdbConnectionError: Transport failure.
        """
        local = Path(local_path)
        try:
            local_stat = _local_stat(local)
        except FileNotFoundError as e:
            raise TransferError("local_missing", f"No such file: {local}", path=str(local)) from e
        except PermissionError as e:
            raise TransferError("permission_denied", str(e), path=str(local)) from e
        if not local_stat.is_file:
            raise TransferError("not_a_file", f"Can only push regular files: {local}", path=str(local))

        sink = progress or self._progress_factory(str(local))
        async with self.sync_connection(serial) as conn:
            target = remote_path
            if target.endswith("/"):
                target = posixpath.join(target, local.name)
                remote_stat = await sync_stat(conn, target)
            else:
                remote_stat = await sync_stat(conn, target)
                if remote_stat.is_dir:
                    target = posixpath.join(target, local.name)
                    remote_stat = await sync_stat(conn, target)

            if skip_unchanged and remote_stat.is_at_least(local_stat):
                logger.info("Skipping %s, %s is up to date", local, target)
                return TransferOutcome(str(local), target, TransferStatus.SKIPPED)

            logger.debug("Pushing %s -> %s (%d bytes)", local, target, local_stat.size)
            sent = await sync_send(
                conn,
                local,
                target,
                mode=local_stat.mode,
                mtime=local_stat.mtime,
                size=local_stat.size,
                chunk_size=self._context.chunk_size,
                progress=sink,
            )
        logger.info("Pushed %s -> %s", local, target)
        return TransferOutcome(str(local), target, TransferStatus.SUCCEEDED, bytes=sent)

    async def pull_file(
        self,
        serial: str | None,
        remote_path: str,
        local_path: str | os.PathLike,
        skip_unchanged: bool = False,
        progress: ProgressSink | None = None,
    ) -> TransferOutcome:
        """Pull one remote file.

        Data is written to ``<dest>.part`` and renamed over the destination
        once ``DONE`` arrives; the remote mtime is then applied. If the pull
        is cancelled the ``.part`` file is kept (or removed when the context
        says ``keep_partial_pulls=False``). Any other failure removes it.

        A symlink is pulled as the file it points at; its size is not
        checked and it is never skipped as unchanged. A link to a directory
        fails on the device like any unreadable file.

        Raises:
            TransferError: ``remote_missing``, ``not_a_file``,
                ``stat_mismatch``, or a ``FAIL`` from the device.
            AdbConnectionError: Transport failure; ``OperationCancelled`` if
                the connection was aborted.
        """
        destination = Path(local_path)
        if destination.is_dir() or str(local_path).endswith(("/", os.sep)):
            destination = destination / posixpath.basename(remote_path.rstrip("/"))

        sink = progress or self._progress_factory(remote_path)
        async with self.sync_connection(serial) as conn:
            remote_stat = await sync_stat(conn, remote_path)
            if not remote_stat.exists:
                raise TransferError(
                    "remote_missing", f"Remote path not found: {remote_path}", path=remote_path
                )
            if remote_stat.is_dir:
                raise TransferError(
                    "not_a_file", f"Remote path is a directory: {remote_path}", path=remote_path
                )

            # STAT answers with lstat data, so a link's size is the length of
            # its target path. The device follows the link on RECV.
            link = remote_stat.is_symlink
            expected = 0 if link else remote_stat.size

            if skip_unchanged and not link and destination.exists():
                if _local_stat(destination).is_at_least(remote_stat):
                    logger.info("Skipping %s, %s is up to date", remote_path, destination)
                    return TransferOutcome(remote_path, str(destination), TransferStatus.SKIPPED)

            destination.parent.mkdir(parents=True, exist_ok=True)
            partial = part_path(destination)
            logger.debug("Pulling %s -> %s (%d bytes)", remote_path, destination, expected)
            try:
                received = await sync_recv(conn, remote_path, partial, expected, sink)
            except (asyncio.CancelledError, OperationCancelled):
                if self._context.keep_partial_pulls:
                    logger.info("Pull of %s cancelled, partial data kept in %s", remote_path, partial)
                else:
                    _remove_quietly(partial)
                raise
            except Exception:
                _remove_quietly(partial)
                raise

        if expected and received != expected:
            _remove_quietly(partial)
            raise TransferError(
                "stat_mismatch",
                f"{remote_path}: received {received} bytes, stat reported {expected}",
                path=remote_path,
            )
        os.replace(partial, destination)
        os.utime(destination, (remote_stat.mtime, remote_stat.mtime))
        logger.info("Pulled %s -> %s", remote_path, destination)
        return TransferOutcome(
            remote_path, str(destination), TransferStatus.SUCCEEDED, bytes=received
        )

    # ─── BATCH ────────────────────────────────────────────────────────

    async def transfer(self, serial: str | None, request: TransferRequest) -> list[TransferOutcome]:
        """Run a push or pull, recursive or not.

        Never raises for per-file failures: each path gets its own outcome,
        in enumeration order. Cancellation still propagates, once every other
        job has been cancelled and its connection closed.
        """
        try:
            if request.direction is Direction.PUSH:
                jobs = await self._plan_push(serial, request)
            else:
                jobs = await self._plan_pull(serial, request)
        except (AdbError, OSError) as e:
            logger.warning("Transfer of %s failed: %s", request.source, e)
            return [
                TransferOutcome(
                    request.source, request.destination, TransferStatus.FAILED, reason=str(e)
                )
            ]

        semaphore = asyncio.Semaphore(self._context.max_workers)

        async def run(source: str, destination: str) -> TransferOutcome:
            async with semaphore:
                return await self._run_job(serial, request, source, destination)

        return await gather_all(run(src, dst) for src, dst in jobs)

    async def _run_job(
        self,
        serial: str | None,
        request: TransferRequest,
        source: str,
        destination: str,
    ) -> TransferOutcome:
        try:
            if request.direction is Direction.PUSH:
                return await self.push_file(
                    serial, source, destination, skip_unchanged=request.skip_unchanged
                )
            return await self.pull_file(
                serial, source, destination, skip_unchanged=request.skip_unchanged
            )
        except OperationCancelled:
            raise
        except (AdbError, OSError) as e:
            logger.warning("Transfer of %s failed: %s", source, e)
            return TransferOutcome(source, destination, TransferStatus.FAILED, reason=str(e))

    async def _plan_push(self, serial: str | None, request: TransferRequest) -> list[tuple[str, str]]:
        source = Path(request.source)
        if not source.is_dir():
            return [(str(source), request.destination)]
        if not request.recursive:
            raise TransferError(
                "not_a_file", f"{source} is a directory; use a recursive transfer", path=str(source)
            )

        remote_root = request.destination.rstrip("/") or "/"
        if request.destination.endswith("/") or (await self.stat(serial, remote_root)).is_dir:
            remote_root = posixpath.join(remote_root, source.name)

        jobs = []
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames.sort()
            relative = Path(dirpath).relative_to(source)
            for name in sorted(filenames):
                remote_dir = posixpath.join(remote_root, *relative.parts)
                jobs.append((str(Path(dirpath) / name), posixpath.join(remote_dir, name)))
        logger.debug("Planned %d file(s) for push of %s", len(jobs), source)
        return jobs

    async def _plan_pull(self, serial: str | None, request: TransferRequest) -> list[tuple[str, str]]:
        remote = request.source.rstrip("/") or "/"
        async with self.sync_connection(serial) as conn:
            remote_stat = await sync_stat(conn, remote)
            if not remote_stat.exists:
                raise TransferError(
                    "remote_missing", f"Remote path not found: {remote}", path=remote
                )
            if not remote_stat.is_dir:
                return [(remote, request.destination)]
            if not request.recursive:
                raise TransferError(
                    "not_a_file", f"{remote} is a directory; use a recursive transfer", path=remote
                )

            local_root = Path(request.destination)
            if local_root.is_dir():
                local_root = local_root / posixpath.basename(remote)

            jobs: list[tuple[str, str]] = []
            pending = [(remote, local_root)]
            while pending:
                remote_dir, local_dir = pending.pop(0)
                local_dir.mkdir(parents=True, exist_ok=True)
                entries = await sync_list(conn, remote_dir)
                for name, entry in sorted(entries, key=lambda item: item[0]):
                    remote_child = posixpath.join(remote_dir, name)
                    if entry.is_dir:
                        pending.append((remote_child, local_dir / name))
                    # Links are not followed here, so link cycles cannot loop.
                    elif entry.is_file or entry.is_symlink:
                        jobs.append((remote_child, str(local_dir / name)))
                    else:
                        logger.debug("Skipping %s (%s)", remote_child, entry.file_type)
        logger.debug("Planned %d file(s) for pull of %s", len(jobs), remote)
        return jobs
