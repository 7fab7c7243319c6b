import asyncio
import logging
from contextlib import aclosing

# Seconds to wait before restarting the follower process
RESTART_DELAY = 2

# Follow by name across rotations, starting at the current end of the file
TAIL_COMMAND = ("tail", "-F", "-n", "0")


class LogSource:
    """
    Follows the game server log with a `tail` subprocess and yields its lines.

    Whenever the subprocess exits it is restarted after `RESTART_DELAY`
    seconds, so iterating over `lines()` never ends on its own.  Lines written
    while no follower is running are not replayed.
    """

    def __init__(
        self, log_file, command=TAIL_COMMAND, restart_delay=RESTART_DELAY, logger=None
    ):
        self.log_file = log_file
        self.command = tuple(command)
        self.restart_delay = restart_delay
        self.logger = logger or logging.getLogger(__name__)
        self.process = None

    async def lines(self):
        while True:
            async with aclosing(self._follow()) as follower:
                async for line in follower:
                    yield line
            await asyncio.sleep(self.restart_delay)

    async def _follow(self):
        self.logger.info(f'[Tail] Following "{self.log_file}"...')
        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.command,
                self.log_file,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            self.logger.exception(f'[Tail] Could not start "{self.command[0]}"')
            return

        stderr_task = asyncio.create_task(self._drain_stderr(self.process))
        try:
            while True:
                raw = await self.process.stdout.readline()
                if not raw:
                    break
                yield raw.decode("utf-8", errors="replace").rstrip("\r\n")
            returncode = await self.process.wait()
            self.logger.warning(
                f"[Tail] Process exited (code {returncode}), restarting in {self.restart_delay}s..."
            )
        finally:
            await self.stop()
            await stderr_task

    async def _drain_stderr(self, process):
        async for raw in process.stderr:
            self.logger.error(
                f"[Tail Error]: {raw.decode('utf-8', errors='replace').rstrip()}"
            )

    async def stop(self):
        process, self.process = self.process, None
        if process is None or process.returncode is not None:
            return
        process.terminate()
        await process.wait()
