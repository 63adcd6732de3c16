import tempfile
import threading
import time
import unittest
from unittest.mock import patch

from library_backend import dependencies
from library_backend.config import Settings
from library_backend.db import FileStateStore, InMemoryStateStore, SqlStateStore
from library_backend.providers.gemini import GeminiProvider
from library_backend.providers.openai_responses import OpenAIResponsesProvider
from library_backend.storage import (
    FileBackupStore,
    InMemoryBackupStore,
    S3BackupStore,
    SqlBackupStore,
)


class BackendSelectionTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        dependencies._engine = None
        self.addCleanup(setattr, dependencies, "_engine", None)

    def _settings(self, **overrides):
        values = {
            "data_dir": self._tmp.name,
            "database_url": None,
            "backup_bucket": None,
            "openai_api_key": None,
            "gemini_api_key": None,
            "use_in_memory_backends": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    def test_in_memory_toggle_wins(self):
        settings = self._settings(use_in_memory_backends=True, database_url="sqlite://")
        self.assertIsInstance(dependencies.build_state_store(settings), InMemoryStateStore)
        self.assertIsInstance(dependencies.build_backup_store(settings), InMemoryBackupStore)

    def test_files_by_default(self):
        settings = self._settings()
        store = dependencies.build_state_store(settings)
        self.assertIsInstance(store, FileStateStore)
        self.assertTrue(store.path.startswith(self._tmp.name))
        backups = dependencies.build_backup_store(settings)
        self.assertIsInstance(backups, FileBackupStore)
        self.assertEqual(backups.backup_dir, settings.resolved_backup_dir)

    def test_database_url_selects_sql_stores_sharing_one_engine(self):
        settings = self._settings(database_url="sqlite+pysqlite:///:memory:")
        store = dependencies.build_state_store(settings)
        backups = dependencies.build_backup_store(settings)
        self.assertIsInstance(store, SqlStateStore)
        self.assertIsInstance(backups, SqlBackupStore)
        self.assertIs(store.engine, backups.engine)

    @patch("library_backend.storage.boto3.client")
    def test_bucket_selects_s3_backups(self, mock_client):
        settings = self._settings(backup_bucket="fees-backups")
        self.assertIsInstance(dependencies.build_backup_store(settings), S3BackupStore)
        mock_client.assert_called_once()


class ChatGatewaySelectionTests(unittest.TestCase):
    def _settings(self, **overrides):
        values = {"openai_api_key": None, "gemini_api_key": None}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    @patch("library_backend.providers.gemini.genai.Client")
    def test_openai_then_gemini(self, _mock_client):
        gateway = dependencies.build_chat_gateway(
            self._settings(openai_api_key="sk", gemini_api_key="g", gemini_models="a, b")
        )
        self.assertEqual(gateway.provider_names, ["openai", "gemini"])
        self.assertIsInstance(gateway.providers[0], OpenAIResponsesProvider)
        self.assertIsInstance(gateway.providers[1], GeminiProvider)
        self.assertEqual(gateway.providers[1].models, ["a", "b"])

    def test_no_keys_means_no_providers(self):
        self.assertEqual(dependencies.build_chat_gateway(self._settings()).providers, [])


class SingletonTests(unittest.TestCase):
    def setUp(self):
        dependencies._state_service = None
        self.addCleanup(setattr, dependencies, "_state_service", None)

    @patch("library_backend.dependencies.get_settings")
    @patch("library_backend.dependencies.build_state_store")
    def test_concurrent_first_requests_share_one_state_service(self, mock_build, _mock_settings):
        def slow_build(settings):
            time.sleep(0.05)
            return InMemoryStateStore()

        mock_build.side_effect = slow_build
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(dependencies.get_state_service())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 8)
        self.assertTrue(all(service is results[0] for service in results))
        mock_build.assert_called_once()


if __name__ == "__main__":
    unittest.main()
