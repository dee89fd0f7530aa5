from pathlib import Path
from tempfile import TemporaryDirectory
import unittest

from pastforward.config import ensure_local_paths, load_config

MINIMAL = """
paths:
  output: "./out"
  log: "./logs/pastforward.log"
transformer:
  command_template: "edit-image --in {source} --prompt {prompt} --out {output}"
""".strip()


class ConfigTest(unittest.TestCase):
    def write(self, root: Path, text: str) -> Path:
        config_path = root / "pastforward.yaml"
        config_path.write_text(text, encoding="utf-8")
        return config_path

    def test_load_config_defaults(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config = load_config(self.write(root, MINIMAL))
            self.assertEqual(config.scheduler.concurrency_limit, 2)
            self.assertIsNone(config.transformer.timeout_seconds)
            self.assertEqual(config.album.columns, 2)
            self.assertEqual(config.album.title, "Past Forward")
            self.assertEqual(config.paths.output.resolve(), (root / "out").resolve())

            ensure_local_paths(config)
            self.assertTrue(config.paths.output.is_dir())
            self.assertTrue(config.paths.log.parent.is_dir())

    def test_load_config_overrides(self) -> None:
        with TemporaryDirectory() as temp_dir:
            text = MINIMAL + """
  timeout_seconds: 90
scheduler:
  concurrency_limit: 4
album:
  columns: 3
  cell_size: 256
  title: "Back to the Future"
"""
            config = load_config(self.write(Path(temp_dir), text))
            self.assertEqual(config.scheduler.concurrency_limit, 4)
            self.assertEqual(config.transformer.timeout_seconds, 90.0)
            self.assertEqual(config.album.columns, 3)
            self.assertEqual(config.album.cell_size, 256)
            self.assertEqual(config.album.title, "Back to the Future")

    def test_invalid_values(self) -> None:
        cases = [
            "paths:\n  output: ./out\n  log: ./x.log\n",
            MINIMAL + "\nscheduler:\n  concurrency_limit: 0\n",
            MINIMAL + "\n  timeout_seconds: -1\n",
            MINIMAL + "\nalbum:\n  cell_size: 10\n",
            MINIMAL + "\nalbum: [1, 2]\n",
            MINIMAL.replace("edit-image --in", "edit-image '--in"),
            MINIMAL.replace("edit-image --in {source} --prompt {prompt} --out {output}", "   "),
            "- just\n- a list\n",
        ]
        with TemporaryDirectory() as temp_dir:
            for text in cases:
                with self.subTest(text=text):
                    with self.assertRaises(ValueError):
                        load_config(self.write(Path(temp_dir), text))


if __name__ == "__main__":
    unittest.main()
