import importlib
import logging
import os
import unittest
from unittest import mock

import entrypoint


class TestEntrypoint(unittest.TestCase):
    def test_default_log_level_is_info(self):
        env = {k: v for k, v in os.environ.items() if k != "LOG_LEVEL"}
        with mock.patch.dict(os.environ, env, clear=True):
            module = importlib.reload(entrypoint)
        self.assertEqual(module.log_level, "INFO")
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_main_serves_app_from_env(self):
        with mock.patch.dict(os.environ, {"HOST": "127.0.0.1", "PORT": "9001", "RELOAD": "false"}), \
                mock.patch.object(entrypoint.uvicorn, "run") as run:
            entrypoint.main()
        run.assert_called_once_with(entrypoint.app, host="127.0.0.1", port=9001, reload=False)

    def test_reload_passes_import_string(self):
        with mock.patch.dict(os.environ, {"RELOAD": "true"}), \
                mock.patch.object(entrypoint.uvicorn, "run") as run:
            entrypoint.main()
        self.assertEqual(run.call_args.args[0], "app:app")
        self.assertTrue(run.call_args.kwargs["reload"])


if __name__ == "__main__":
    unittest.main()
