"""Command registry for the remote transport.

Maps each command name to the HTTP endpoint that implements it on the
backend. The native transport never consults the registry; it is only
needed when commands travel over HTTP.

Path templates use `:name` segments, which are filled from the call
arguments at dispatch time:

    delete_account -> DELETE /api/accounts/:accountId
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from ..errors import UnmappedCommandError

PLACEHOLDER_PATTERN = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


class HttpVerb(str, Enum):
    """HTTP methods used by the backend API."""

    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"

    @property
    def sends_query(self) -> bool:
        """Arguments travel in the query string rather than the body."""
        return self in (HttpVerb.GET, HttpVerb.DELETE)


class ConsoleCommand(str, Enum):
    """Commands driving the debug console."""

    ENABLE = "enable_debug_console"
    DISABLE = "disable_debug_console"
    IS_ENABLED = "is_debug_console_enabled"
    GET_LOGS = "get_debug_console_logs"
    CLEAR_LOGS = "clear_debug_console_logs"


@dataclass(frozen=True)
class CommandDescriptor:
    """HTTP descriptor for one command."""

    name: str
    path_template: str
    verb: HttpVerb

    @property
    def placeholders(self) -> tuple[str, ...]:
        """Placeholder names in template order."""
        return tuple(PLACEHOLDER_PATTERN.findall(self.path_template))


# (name, path template, verb)
DEFAULT_COMMANDS: tuple[tuple[str, str, str], ...] = (
    # Accounts
    ("list_accounts", "/api/accounts", "GET"),
    ("get_current_account", "/api/accounts/current", "GET"),
    ("switch_account", "/api/accounts/switch", "POST"),
    ("add_account", "/api/accounts", "POST"),
    ("delete_account", "/api/accounts/:accountId", "DELETE"),
    ("delete_accounts", "/api/accounts/bulk-delete", "POST"),
    ("fetch_account_quota", "/api/accounts/:accountId/quota", "GET"),
    ("refresh_account_quota", "/api/accounts/:accountId/quota", "GET"),
    ("refresh_all_quotas", "/api/accounts/refresh", "POST"),
    ("reorder_accounts", "/api/accounts/reorder", "POST"),
    ("toggle_proxy_status", "/api/accounts/:accountId/toggle-proxy", "POST"),
    ("warm_up_accounts", "/api/accounts/warmup", "POST"),
    ("warm_up_all_accounts", "/api/accounts/warmup", "POST"),
    ("warm_up_account", "/api/accounts/:accountId/warmup", "POST"),
    ("export_accounts", "/api/accounts/export", "POST"),
    ("bind_device_profile", "/api/accounts/:accountId/bind-device", "POST"),
    ("get_device_profiles", "/api/accounts/:accountId/device-profiles", "GET"),
    ("list_device_versions", "/api/accounts/:accountId/device-versions", "GET"),
    ("preview_generate_profile", "/api/accounts/device-preview", "POST"),
    (
        "bind_device_profile_with_profile",
        "/api/accounts/:accountId/bind-device-profile",
        "POST",
    ),
    ("restore_original_device", "/api/accounts/restore-original", "POST"),
    (
        "restore_device_version",
        "/api/accounts/:accountId/device-versions/:versionId/restore",
        "POST",
    ),
    (
        "delete_device_version",
        "/api/accounts/:accountId/device-versions/:versionId",
        "DELETE",
    ),
    ("open_device_folder", "/api/system/open-folder", "POST"),
    # Proxy control & status
    ("get_proxy_status", "/api/proxy/status", "GET"),
    ("start_proxy_service", "/api/proxy/start", "POST"),
    ("stop_proxy_service", "/api/proxy/stop", "POST"),
    ("update_model_mapping", "/api/proxy/mapping", "POST"),
    ("generate_api_key", "/api/proxy/api-key/generate", "POST"),
    ("clear_proxy_session_bindings", "/api/proxy/session-bindings/clear", "POST"),
    ("clear_proxy_rate_limit", "/api/proxy/rate-limits/:accountId", "DELETE"),
    ("clear_all_proxy_rate_limits", "/api/proxy/rate-limits", "DELETE"),
    ("check_proxy_health", "/api/proxy/health-check/trigger", "POST"),
    ("get_preferred_account", "/api/proxy/preferred-account", "GET"),
    ("set_preferred_account", "/api/proxy/preferred-account", "POST"),
    ("fetch_zai_models", "/api/zai/models/fetch", "POST"),
    ("load_config", "/api/config", "GET"),
    ("save_config", "/api/config", "POST"),
    ("get_proxy_stats", "/api/proxy/stats", "GET"),
    ("set_proxy_monitor_enabled", "/api/proxy/monitor/toggle", "POST"),
    # Logs & monitoring
    ("get_proxy_logs_filtered", "/api/logs", "GET"),
    ("get_proxy_logs_count_filtered", "/api/logs/count", "GET"),
    ("clear_proxy_logs", "/api/logs/clear", "POST"),
    ("get_proxy_log_detail", "/api/logs/:logId", "GET"),
    # Debug console
    (ConsoleCommand.ENABLE.value, "/api/proxy/debug/enable", "POST"),
    (ConsoleCommand.DISABLE.value, "/api/proxy/debug/disable", "POST"),
    (ConsoleCommand.IS_ENABLED.value, "/api/proxy/debug/enabled", "GET"),
    (ConsoleCommand.GET_LOGS.value, "/api/proxy/debug/logs", "GET"),
    (ConsoleCommand.CLEAR_LOGS.value, "/api/proxy/debug/logs/clear", "POST"),
    # CLI sync
    ("get_cli_sync_status", "/api/proxy/cli/status", "POST"),
    ("execute_cli_sync", "/api/proxy/cli/sync", "POST"),
    ("execute_cli_restore", "/api/proxy/cli/restore", "POST"),
    ("get_cli_config_content", "/api/proxy/cli/config", "POST"),
    # Token stats
    ("get_token_stats_hourly", "/api/stats/token/hourly", "GET"),
    ("get_token_stats_daily", "/api/stats/token/daily", "GET"),
    ("get_token_stats_weekly", "/api/stats/token/weekly", "GET"),
    ("get_token_stats_by_account", "/api/stats/token/by-account", "GET"),
    ("get_token_stats_summary", "/api/stats/token/summary", "GET"),
    ("get_token_stats_by_model", "/api/stats/token/by-model", "GET"),
    ("get_token_stats_model_trend_hourly", "/api/stats/token/model-trend/hourly", "GET"),
    ("get_token_stats_model_trend_daily", "/api/stats/token/model-trend/daily", "GET"),
    ("get_token_stats_account_trend_hourly", "/api/stats/token/account-trend/hourly", "GET"),
    ("get_token_stats_account_trend_daily", "/api/stats/token/account-trend/daily", "GET"),
    # System
    ("get_data_dir_path", "/api/system/data-dir", "GET"),
    ("save_text_file", "/api/system/save-file", "POST"),
    ("get_update_settings", "/api/system/updates/settings", "GET"),
    ("save_update_settings", "/api/system/updates/save", "POST"),
    ("is_auto_launch_enabled", "/api/system/autostart/status", "GET"),
    ("toggle_auto_launch", "/api/system/autostart/toggle", "POST"),
    ("get_http_api_settings", "/api/system/http-api/settings", "GET"),
    ("save_http_api_settings", "/api/system/http-api/settings", "POST"),
    ("open_data_folder", "/api/system/open-folder", "POST"),
    # Cloudflared
    ("cloudflared_install", "/api/proxy/cloudflared/install", "POST"),
    ("cloudflared_start", "/api/proxy/cloudflared/start", "POST"),
    ("cloudflared_stop", "/api/proxy/cloudflared/stop", "POST"),
    ("cloudflared_get_status", "/api/proxy/cloudflared/status", "GET"),
    # Updates
    ("should_check_updates", "/api/system/updates/check-status", "GET"),
    ("check_for_updates", "/api/system/updates/check", "POST"),
    ("update_last_check_time", "/api/system/updates/touch", "POST"),
    # OAuth
    ("prepare_oauth_url", "/api/auth/url", "GET"),
    ("start_oauth_login", "/api/accounts/oauth/start", "POST"),
    ("complete_oauth_login", "/api/accounts/oauth/complete", "POST"),
    ("cancel_oauth_login", "/api/accounts/oauth/cancel", "POST"),
    ("submit_oauth_code", "/api/accounts/oauth/submit-code", "POST"),
    # Import
    ("import_v1_accounts", "/api/accounts/import/v1", "POST"),
    ("import_from_db", "/api/accounts/import/db", "POST"),
    ("import_custom_db", "/api/accounts/import/db-custom", "POST"),
    ("sync_account_from_db", "/api/accounts/sync/db", "POST"),
    # Security / IP management
    ("get_ip_access_logs", "/api/security/logs", "GET"),
    ("clear_ip_access_logs", "/api/security/logs/clear", "POST"),
    ("get_ip_stats", "/api/security/stats", "GET"),
    ("get_ip_token_stats", "/api/security/token-stats", "GET"),
    ("get_ip_blacklist", "/api/security/blacklist", "GET"),
    ("add_ip_to_blacklist", "/api/security/blacklist", "POST"),
    ("remove_ip_from_blacklist", "/api/security/blacklist", "DELETE"),
    ("clear_ip_blacklist", "/api/security/blacklist/clear", "POST"),
    ("check_ip_in_blacklist", "/api/security/blacklist/check", "GET"),
    ("get_ip_whitelist", "/api/security/whitelist", "GET"),
    ("add_ip_to_whitelist", "/api/security/whitelist", "POST"),
    ("remove_ip_from_whitelist", "/api/security/whitelist", "DELETE"),
    ("clear_ip_whitelist", "/api/security/whitelist/clear", "POST"),
    ("check_ip_in_whitelist", "/api/security/whitelist/check", "GET"),
    ("get_security_config", "/api/security/config", "GET"),
    ("update_security_config", "/api/security/config", "POST"),
)


class CommandRegistry(Mapping[str, CommandDescriptor]):
    """Read-only mapping from command name to HTTP descriptor.

    Populated once at construction; there is no way to register commands
    afterwards.
    """

    def __init__(self, descriptors: Mapping[str, CommandDescriptor]):
        for name, descriptor in descriptors.items():
            if name != descriptor.name:
                raise ValueError(f"Descriptor name mismatch: {name} != {descriptor.name}")
        self._descriptors = MappingProxyType(dict(descriptors))

    @classmethod
    def from_table(cls, table: tuple[tuple[str, str, str], ...]) -> CommandRegistry:
        """Build a registry from (name, path template, verb) rows."""
        descriptors: dict[str, CommandDescriptor] = {}
        for name, path_template, verb in table:
            if name in descriptors:
                raise ValueError(f"Duplicate command: {name}")
            descriptors[name] = CommandDescriptor(name, path_template, HttpVerb(verb))
        return cls(descriptors)

    @classmethod
    def default(cls) -> CommandRegistry:
        """Registry covering the backend's admin API."""
        return cls.from_table(DEFAULT_COMMANDS)

    def resolve(self, name: str) -> CommandDescriptor:
        """Look up a descriptor, raising UnmappedCommandError on a miss."""
        try:
            return self._descriptors[name]
        except KeyError:
            raise UnmappedCommandError(name) from None

    def __getitem__(self, name: str) -> CommandDescriptor:
        return self._descriptors[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)
