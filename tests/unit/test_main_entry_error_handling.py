import io
import sys
from pathlib import Path
import unittest
from unittest import mock

from rich.console import Console

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

import guard.__main__ as runtime_main


class MainEntryErrorHandlingTests(unittest.TestCase):
    def _run(self, argv, **patches):
        output = io.StringIO()
        console = Console(file=output, width=120)
        with mock.patch.object(runtime_main, "load_dotenv"), mock.patch.object(runtime_main, "_CONSOLE", console), mock.patch(
            "sys.stdout", output
        ):
            if patches:
                with mock.patch.multiple(runtime_main, **patches):
                    code = runtime_main.main(argv)
            else:
                code = runtime_main.main(argv)
        return code, output.getvalue()

    def test_main_handles_runtime_exceptions_without_traceback(self) -> None:
        code, text = self._run(["summary"], create_guard_management=mock.Mock(side_effect=RuntimeError("db unavailable")))

        self.assertEqual(1, code)
        self.assertIn("An unexpected error occurred", text)
        self.assertIn("db unavailable", text)
        self.assertIn("Help:", text)
        self.assertNotIn("Traceback", text)

    def test_main_handles_keyboard_interrupt(self) -> None:
        code, text = self._run(["summary"], create_guard_management=mock.Mock(side_effect=KeyboardInterrupt))

        self.assertEqual(130, code)
        self.assertIn("Session ended", text)

    def test_demo_prints_seeded_organization(self) -> None:
        code, text = self._run(["demo"])

        self.assertEqual(0, code)
        self.assertIn("City Watch (Protectors of the Realm)", text)
        self.assertIn("Drilled Recruits +2", text)
        self.assertIn("Well rested +3", text)
        self.assertIn("Patrol Alpha Patrol", text)
        self.assertIn("Sergeant Vell, 2 soldiers, 1 effects", text)
        self.assertIn("active: Drilled Recruits", text)
        healing = next(row for row in text.splitlines() if "Healing Potions" in row)
        self.assertIn("low", healing)
        noble = next(row for row in text.splitlines() if "Noble Houses" in row)
        self.assertIn("Friendly", noble)
        self.assertIn("+1", noble)

    def test_summary_on_empty_store(self) -> None:
        code, text = self._run(["summary"])

        self.assertEqual(0, code)
        self.assertIn("No guard organizations stored.", text)


if __name__ == "__main__":
    unittest.main()
