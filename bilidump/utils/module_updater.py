"""
This module provides the Modules class to locate and verify the external tools
required by the application, i.e. FFmpeg and, when outputs are verified, ffprobe.
"""
import subprocess
import sys

from loguru import logger

from ..config.common import MODULE_PATH
from ..domain.exceptions import ToolNotFoundException


class Modules:
    """
    A utility class to handle operations related to external modules like FFmpeg.

    It reads the FFmpeg location from the user's `config.user.yaml` file and
    provides a fallback to the system's PATH if no specific path is configured.
    ffprobe is looked up in the same directory as FFmpeg.
    """

    @staticmethod
    def _get_tool_path(tool_name: str) -> str:
        exe_name = f"{tool_name}.exe" if sys.platform == "win32" else tool_name

        if MODULE_PATH and MODULE_PATH.is_dir():
            configured_path = MODULE_PATH / exe_name
            if configured_path.is_file():
                logger.debug(f"Using {tool_name} from configured path: '{configured_path}'")
                return str(configured_path)
            else:
                logger.warning(f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH.")

        return tool_name

    @staticmethod
    def get_ffmpeg_path() -> str:
        """
        Determines the correct FFmpeg executable path to use.

        It prioritizes the path from the user configuration (`ffmpeg_dir`).
        If that is not set or invalid, it falls back to 'ffmpeg', which relies on the
        executable being available in the system's PATH. It also handles
        platform-specific executable names (e.g., adding '.exe' on Windows).

        Returns:
            A string containing the command or absolute path to the FFmpeg executable.
        """
        return Modules._get_tool_path("ffmpeg")

    @staticmethod
    def get_ffprobe_path() -> str:
        return Modules._get_tool_path("ffprobe")

    @staticmethod
    def _verify_tool(tool_cmd: str, tool_name: str) -> str:
        try:
            result = subprocess.run(
                [tool_cmd, "-version"],
                check=True,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"{tool_name} version command failed (return code {e.returncode}):\n{e.stderr}")
            raise ToolNotFoundException(f"'{tool_cmd} -version' exited with {e.returncode}") from e
        except (FileNotFoundError, PermissionError) as e:
            logger.error(
                f"{tool_name} command not found. Please ensure FFmpeg is installed and accessible.\n"
                "You can either add it to your system's PATH or specify its location in the 'config.user.yaml' file."
            )
            raise ToolNotFoundException(f"{tool_name} not found: {tool_cmd}") from e

        version_output_lines = result.stdout.splitlines()
        first_line = version_output_lines[0] if version_output_lines else "<no output>"
        logger.info(f"{tool_name} version check successful: {first_line}")
        return tool_cmd

    @staticmethod
    def verify_ffmpeg() -> str:
        """
        Verifies that FFmpeg is installed, accessible, and can be executed.

        This is the pre-flight check of a run. It executes `ffmpeg -version` once
        and logs the first line of its output. Without a working FFmpeg there is
        no point in touching any item, so every failure here is raised.

        Returns:
            The FFmpeg command that passed the check, to be reused for the merges.

        Raises:
            ToolNotFoundException: If FFmpeg cannot be found or does not run.
        """
        return Modules._verify_tool(Modules.get_ffmpeg_path(), "FFmpeg")

    @staticmethod
    def verify_ffprobe() -> str:
        """
        Same check as `verify_ffmpeg` for ffprobe, which output verification needs.

        Raises:
            ToolNotFoundException: If ffprobe cannot be found or does not run.
        """
        return Modules._verify_tool(Modules.get_ffprobe_path(), "ffprobe")
