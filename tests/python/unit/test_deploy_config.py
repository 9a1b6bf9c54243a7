import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from services.job_runner.deploy_config import (
    DeployConfig,
    load_deploy_config,
    parse_deploy_config,
)
from services.job_runner.errors import ExecutionError

from support import DEPLOYER_YML


class TestDeployConfig(unittest.TestCase):
    def test_parse_full_config(self) -> None:
        cfg = parse_deploy_config(DEPLOYER_YML)

        self.assertEqual(cfg.image, "node:20")
        self.assertEqual(cfg.env, {"NODE_ENV": "preview"})
        self.assertEqual(cfg.deploy, ["npm ci", "npm run deploy"])
        self.assertEqual(cfg.destroy, ["npm run teardown"])

    def test_single_command_string_and_scalar_env(self) -> None:
        cfg = parse_deploy_config("deploy: make preview\nenv:\n  PORT: 8080\n  EMPTY:\n")

        self.assertIsNone(cfg.image)
        self.assertEqual(cfg.deploy, ["make preview"])
        self.assertEqual(cfg.destroy, [])
        self.assertEqual(cfg.env, {"PORT": "8080", "EMPTY": ""})

    def test_empty_document_is_empty_config(self) -> None:
        self.assertEqual(parse_deploy_config(""), DeployConfig())

    def test_invalid_documents(self) -> None:
        for text in (
            "deploy: [",
            "- just\n- a list\n",
            "deploy:\n  run: x\n",
            "env: [a, b]\n",
            "image: ''\n",
            "deploy:\n  - {a: b}\n",
        ):
            with self.subTest(text=text):
                with self.assertRaises(ExecutionError):
                    parse_deploy_config(text)

    def test_load_missing_file(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "deployer.yml"
            with self.assertRaises(ExecutionError) as ctx:
                load_deploy_config(path)
            self.assertIn("deployer.yml not found", str(ctx.exception))
            self.assertEqual(load_deploy_config(path, required=False), DeployConfig())

    def test_load_from_file(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "deployer.yml"
            path.write_text(DEPLOYER_YML, encoding="utf-8")
            self.assertEqual(load_deploy_config(path).image, "node:20")


if __name__ == "__main__":
    unittest.main()
