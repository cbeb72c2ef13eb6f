"""
Container tool wrapper used to pull catalog images and copy their ``/configs``.

Commands are run through ``subprocess.run`` the same way the fetch service
runs its child processes: captured text output, explicit timeout, non-zero
exit turned into ``ContainerToolError``.
"""
import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class ContainerToolError(RuntimeError):
    """A container tool command failed."""

    def __init__(self, command: List[str], return_code: int, output: str):
        self.command = command
        self.return_code = return_code
        self.output = output
        summary = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"{' '.join(command[:2])} failed with return code {return_code}: {summary}")


class ContainerTool:
    """Minimal podman/docker client for catalog extraction."""

    def __init__(self, executable: str = "podman", timeout: int = 900):
        self.executable = executable
        self.timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self.executable) is not None

    def _run(self, args: List[str], timeout: Optional[int] = None) -> str:
        command = [self.executable, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout or self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ContainerToolError(command, -1, f"timed out after {exc.timeout} seconds") from exc
        except OSError as exc:
            raise ContainerToolError(command, -1, str(exc)) from exc

        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode != 0:
            raise ContainerToolError(command, result.returncode, output)
        return output

    def pull(self, image: str, authfile: Optional[Path] = None) -> None:
        """Pull *image*, authenticating with *authfile* when it exists."""
        args = ["pull"]
        if authfile and Path(authfile).is_file():
            args += ["--authfile", str(authfile)]
        else:
            args.append("--tls-verify=false")
        self._run(args + [image])

    def create_container(self, image: str, name: Optional[str] = None) -> str:
        """Create (without starting) a container from *image* and return its name."""
        name = name or f"catalog-extract-{int(time.time() * 1000)}"
        self._run(["create", "--name", name, image])
        return name

    def copy_from(self, container: str, source: str, destination: Path) -> None:
        Path(destination).mkdir(parents=True, exist_ok=True)
        self._run(["cp", f"{container}:{source}", str(destination)])

    def remove_container(self, container: str) -> None:
        try:
            self._run(["rm", "-f", container], timeout=120)
        except ContainerToolError as exc:
            logger.warning(f"Could not remove container {container}: {exc}")

    def remove_image(self, image: str) -> None:
        try:
            self._run(["rmi", image], timeout=300)
        except ContainerToolError as exc:
            logger.warning(f"Could not remove image {image}: {exc}")
