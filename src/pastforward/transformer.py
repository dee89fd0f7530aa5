from __future__ import annotations

import asyncio
import shlex
from pathlib import Path
from typing import Any, Protocol

from .config import TransformerConfig
from .utils import era_image_name


class TransformError(RuntimeError):
    pass


class ImageTransformer(Protocol):
    async def transform(self, source: Any, prompt: str, job_id: str) -> Any: ...


class CommandTransformer:
    """Runs the configured image-editing command once per era.

    Each argument of ``command_template`` may reference ``{source}``, ``{prompt}``,
    ``{era}`` and ``{output}``. The command must write the edited image to
    ``{output}``; that path is the job result.
    """

    def __init__(self, transformer_config: TransformerConfig, output_dir: Path) -> None:
        self.transformer_config = transformer_config
        self.output_dir = output_dir
        self.argv_template = shlex.split(transformer_config.command_template)
        if not self.argv_template:
            raise ValueError("`transformer.command_template` must not be empty")

    def output_path_for(self, job_id: str) -> Path:
        return self.output_dir / era_image_name(job_id)

    def build_command(self, source: Path, prompt: str, job_id: str, output: Path) -> list[str]:
        values = {"source": str(source), "prompt": prompt, "era": job_id, "output": str(output)}
        try:
            return [arg.format(**values) for arg in self.argv_template]
        except (KeyError, IndexError) as exc:
            raise TransformError(f"bad placeholder in command template: {exc}") from exc

    async def transform(self, source: Any, prompt: str, job_id: str) -> Path:
        output = self.output_path_for(job_id)
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.exists():
            output.unlink()
        cmd = self.build_command(Path(source), prompt, job_id, output)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransformError(f"could not start transformer for {job_id}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.transformer_config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise TransformError(
                f"transformer timed out for {job_id} after {self.transformer_config.timeout_seconds}s"
            ) from None

        if process.returncode != 0:
            output_text = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
            raise TransformError(
                f"transform for {job_id} failed: {output_text or 'exit code ' + str(process.returncode)}"
            )
        if not output.is_file() or output.stat().st_size == 0:
            raise TransformError(f"transformer produced no image for {job_id}")
        return output
