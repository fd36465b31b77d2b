import os
import sys
import unittest
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from cli import (
    export_routine,
    backup_db,
    restore_db,
    demo_data,
)
from rest_api import StudioAPI
from fastapi.testclient import TestClient


class CLIToolsTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_cli.db"
        self.yaml_path = "test_cli.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def tearDown(self) -> None:
        for path in [self.db_path, self.yaml_path, "backup.db", "exports"]:
            if os.path.exists(path):
                if os.path.isdir(path):
                    for f in os.listdir(path):
                        os.remove(os.path.join(path, f))
                    os.rmdir(path)
                else:
                    os.remove(path)

    def test_demo_data(self) -> None:
        rid = demo_data(self.db_path, self.yaml_path)
        self.assertIsNotNone(rid)
        self.assertIsNone(demo_data(self.db_path, self.yaml_path))
        api = StudioAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        client = TestClient(api.app)
        data = client.get(f"/routines/{rid}").json()
        self.assertEqual(data["name"], "Morning Circuit")
        self.assertEqual(len(data["exercises"]), 4)
        self.assertEqual(data["total_duration"], 195)

    def test_export_backup_restore(self) -> None:
        rid = demo_data(self.db_path, self.yaml_path)
        os.makedirs("exports", exist_ok=True)
        path = export_routine(self.db_path, rid, "csv", "exports")
        self.assertEqual(path, f"exports/routine_{rid}.csv")
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
        self.assertEqual(len(lines), 5)
        self.assertTrue(lines[1].startswith("1,Jumping Jacks,cardio,45"))
        export_routine(self.db_path, rid, "json", "exports")
        self.assertTrue(os.path.exists(f"exports/routine_{rid}.json"))

        backup_db(self.db_path, "backup.db")
        os.remove(self.db_path)
        restore_db("backup.db", self.db_path)
        api = StudioAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.assertEqual(len(api.routines.fetch_all_routines()), 1)


if __name__ == "__main__":
    unittest.main()
