import unittest
import os
import yaml
from unittest.mock import patch, mock_open
from core.config_loader import load_config, AppConfig, NotificationSettings


class TestConfigLoader(unittest.TestCase):

    def setUp(self):
        self.sample_config = {
            "redis": {"url": "redis://localhost:6379/0"},
            "notifications": {
                "subreddit_name": "testsub",
                "discord": {
                    "enabled": True,
                    "webhook_url": "https://discord.com/api/webhooks/1/abc",
                    "role_id": "1234",
                },
                "slack": {"enabled": False},
                "stale_threshold_minutes": 30,
                "overflow_threshold": 10,
                "giphy_api_key": "from-file",
            },
        }
        self.config_yaml = yaml.dump(self.sample_config)

    def _load(self, config_yaml=None, env=None):
        with patch("builtins.open", mock_open(read_data=config_yaml or self.config_yaml)):
            with patch("os.path.exists", return_value=True):
                with patch.dict(os.environ, env or {}, clear=True):
                    return load_config("dummy_path.yaml")

    def test_load_config_default(self):
        config = self._load()
        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.redis.url, "redis://localhost:6379/0")
        self.assertEqual(config.notifications.subreddit_name, "testsub")
        self.assertEqual(config.notifications.discord.role_id, "1234")
        self.assertEqual(config.notifications.stale_threshold_minutes, 30)
        self.assertTrue(config.notifications.discord_active)
        self.assertFalse(config.notifications.slack_active)

    def test_env_var_override_redis(self):
        config = self._load(env={"REDIS_URL": "redis://env-redis:6379/2"})
        self.assertEqual(config.redis.url, "redis://env-redis:6379/2")

    def test_env_var_override_webhooks(self):
        config = self._load(env={
            "DISCORD_WEBHOOK_URL": "https://discord.com/api/webhooks/2/env",
            "SLACK_WEBHOOK_URL": "https://hooks.slack.com/services/env",
        })
        self.assertEqual(config.notifications.discord.webhook_url, "https://discord.com/api/webhooks/2/env")
        self.assertEqual(config.notifications.slack.webhook_url, "https://hooks.slack.com/services/env")
        # enabled flag still comes from the file
        self.assertFalse(config.notifications.slack_active)

    def test_env_var_override_giphy_key(self):
        config = self._load(env={"GIPHY_API_KEY": "from-env"})
        self.assertEqual(config.notifications.giphy_api_key, "from-env")

    def test_empty_file_uses_defaults(self):
        config = self._load(config_yaml="{}")
        self.assertEqual(config.notifications.stale_threshold_minutes, 45)
        self.assertEqual(config.notifications.overflow_threshold, 5)

    def test_unused_schedule_section_is_ignored(self):
        config = self._load(config_yaml=yaml.dump({"schedule": {"interval_seconds": 60}}))
        self.assertFalse(hasattr(config, "schedule"))
        self.assertNotIn("check_interval_minutes", NotificationSettings.model_fields)

    def test_missing_file_uses_defaults(self):
        with patch("os.path.exists", return_value=False):
            with patch.dict(os.environ, {}, clear=True):
                config = load_config("missing.yaml")
        self.assertEqual(config.redis.url, "redis://localhost:6379/0")
        self.assertFalse(config.notifications.discord_active)


class TestNotificationSettings(unittest.TestCase):

    def test_defaults(self):
        settings = NotificationSettings()
        self.assertEqual(settings.stale_threshold_minutes, 45)
        self.assertEqual(settings.overflow_threshold, 5)
        self.assertEqual(settings.overflow_cooldown_seconds, 3600)
        self.assertEqual(settings.discord.username, "QBert")
        self.assertTrue(settings.enable_submission_notifications)
        self.assertTrue(settings.enable_overflow_alerts)

    def test_platform_needs_endpoint(self):
        settings = NotificationSettings(discord={"enabled": True})
        self.assertFalse(settings.discord_active)

    def test_effective_buffer_ttl(self):
        self.assertEqual(NotificationSettings().effective_buffer_ttl_seconds, 600)

    def test_short_buffer_ttl_warns_once_at_load(self):
        with self.assertLogs('core.config_loader', level='WARNING') as logs:
            short = NotificationSettings(buffer_ttl_seconds=60, flush_interval_seconds=300)
        self.assertEqual(len(logs.output), 1)
        self.assertIn("using 600s", logs.output[0])

        with patch("core.config_loader.logger") as mock_logger:
            for _ in range(3):
                self.assertEqual(short.effective_buffer_ttl_seconds, 600)
        mock_logger.warning.assert_not_called()

    def test_ttl_between_one_and_two_intervals_warns(self):
        with self.assertLogs('core.config_loader', level='WARNING'):
            settings = NotificationSettings(buffer_ttl_seconds=150, flush_interval_seconds=100)
        self.assertEqual(settings.effective_buffer_ttl_seconds, 200)

    def test_sufficient_ttl_does_not_warn(self):
        with patch("core.config_loader.logger") as mock_logger:
            settings = NotificationSettings(buffer_ttl_seconds=200, flush_interval_seconds=100)
        mock_logger.warning.assert_not_called()
        self.assertEqual(settings.effective_buffer_ttl_seconds, 200)


if __name__ == '__main__':
    unittest.main()
