#!/usr/bin/env python3
"""Command-line interface for Calmirror calendar mirroring."""

import argparse
import logging
import sys
from pathlib import Path

from calmirror import __version__
from calmirror.auth import (
    GoogleAuthenticator,
    OAuth2Config,
    build_event_service,
    create_oauth2_config_file,
    load_oauth2_config,
)
from calmirror.client import GoogleEventService
from calmirror.config import (
    Config,
    MirrorRule,
    create_example_config,
    ensure_directories,
    get_config_dir,
    get_credentials_dir,
    get_default_config_path,
)
from calmirror.errors import CalmirrorError, LockTimeout
from calmirror.purge import preview_purge, select_purge_rules
from calmirror.store import StateDatabase
from calmirror.sync import MirrorSynchronizer

logger = logging.getLogger("calmirror")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Calmirror - one-way Google Calendar mirroring",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  calmirror init                       # Initialize configuration structure
  calmirror auth --setup               # Set up OAuth2 configuration
  calmirror auth                       # Authenticate all accounts
  calmirror sync                       # Run every enabled mirror rule
  calmirror sync work_to_personal      # Run one mirror rule
  calmirror sync --full                # Discard stored state and resync
  calmirror sync --delete-only         # Remove mirrored events, create nothing
  calmirror status                     # Show sync tokens and error counters
  calmirror purge --all --dry-run      # Show what would be purged
        """,
    )

    parser.add_argument(
        "--version", action="version", version=f"Calmirror {__version__}"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=get_default_config_path(),
        help=f"Path to configuration file (default: {get_default_config_path()})",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Mirror source calendars")
    sync_parser.add_argument(
        "rules",
        nargs="*",
        help="Specific mirror rule IDs to run (default: all enabled rules)",
    )
    sync_parser.add_argument(
        "--list", action="store_true", help="List mirror rules instead of syncing"
    )
    sync_parser.add_argument(
        "--full",
        action="store_true",
        help="Clear stored mappings and sync token before syncing",
    )
    sync_parser.add_argument(
        "--delete-only",
        action="store_true",
        help="Delete all mirrored events without creating new ones",
    )

    status_parser = subparsers.add_parser(
        "status", help="Show stored sync state per mirror rule"
    )
    status_parser.add_argument("rules", nargs="*", help="Mirror rule IDs")

    purge_parser = subparsers.add_parser(
        "purge",
        help="Delete mirrored events from target calendars",
        description="Remove events created by Calmirror. Use --all for every rule, or name mirror rule IDs.",
    )
    purge_parser.add_argument(
        "--all", action="store_true", help="Purge mirrored events of ALL rules"
    )
    purge_parser.add_argument(
        "rules", nargs="*", help="Mirror rule IDs to purge (REQUIRED unless --all)"
    )
    purge_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be purged without deleting events",
    )

    auth_parser = subparsers.add_parser(
        "auth", help="Authenticate with Google accounts"
    )
    auth_parser.add_argument(
        "--setup", action="store_true", help="Create the OAuth2 configuration file"
    )
    auth_parser.add_argument(
        "accounts",
        nargs="*",
        help="Specific account names to authenticate (default: all accounts)",
    )

    config_parser = subparsers.add_parser("config", help="Show current configuration")
    config_parser.add_argument(
        "--example", action="store_true", help="Show example configuration"
    )

    init_parser = subparsers.add_parser(
        "init", help="Initialize configuration structure and create starter config"
    )
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite existing configuration files"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    handlers = {
        "sync": handle_sync_command,
        "status": handle_status_command,
        "purge": handle_purge_command,
        "auth": handle_auth_command,
        "config": handle_config_command,
        "init": handle_init_command,
    }
    return handlers[args.command](args)


def setup_logging(config: Config | None, verbose: bool = False):
    """Configure the root logger from the loaded configuration."""
    level_name = "DEBUG" if verbose else (config.log_level if config else "INFO")
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config and config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level_name).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
    # Discovery and transport chatter is only useful when debugging the API.
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def load_valid_config(path: Path) -> Config | None:
    config = Config.from_file(path)
    errors = config.validate()
    if errors:
        print(f"❌ Configuration Issues ({len(errors)}):")
        for error in errors:
            print(f"  • {error}")
        return None
    return config


def select_rules(args, config: Config) -> list[MirrorRule] | None:
    if not args.rules:
        return config.get_enabled_mirror_rules()

    rules = []
    for rule_id in args.rules:
        rule = config.get_mirror_rule(rule_id)
        if not rule:
            print(f"❌ Mirror rule '{rule_id}' not found")
            return None
        rules.append(rule)
    return rules


class ServiceCache:
    """Builds one Calendar API client per account, on first use."""

    def __init__(self, config: Config, oauth2_config: OAuth2Config):
        self.config = config
        self.oauth2_config = oauth2_config
        self._services: dict[str, GoogleEventService] = {}

    def for_label(self, account_label: str) -> GoogleEventService:
        account = self.config.get_account_for_label(account_label)
        if account is None:
            raise CalmirrorError(f"Unknown account for calendar {account_label}")
        if account.name not in self._services:
            self._services[account.name] = build_event_service(
                account.name, self.oauth2_config
            )
        return self._services[account.name]


def run_rules(
    config: Config,
    rules: list[MirrorRule],
    force_full_sync: bool = False,
    delete_only: bool = False,
) -> int:
    """Run one pass per rule; returns the number of failed rules."""
    oauth2_config = load_oauth2_config()
    if not oauth2_config:
        print("❌ OAuth2 configuration not found")
        print("💡 Run 'calmirror auth --setup' to create the configuration file")
        return len(rules)

    services = ServiceCache(config, oauth2_config)
    failures = 0

    for rule in rules:
        print(f"\n🔄 Mirroring [{rule.id}] {rule.source_calendar} → {rule.target_calendar}")
        try:
            settings = config.build_settings(
                rule, force_full_sync=force_full_sync, delete_only=delete_only
            )
            with StateDatabase(settings.state_db_path) as db:
                synchronizer = MirrorSynchronizer(
                    settings,
                    source_client=services.for_label(rule.source_calendar),
                    target_client=services.for_label(rule.target_calendar),
                    mappings=db.mapping_store(settings.pair_key),
                    state=db.sync_state_store(settings.pair_key),
                )
                report = synchronizer.run()
            status = "⚠️ " if report.partial_failure else "✅"
            print(f"  {status} {report.summary()}")
        except LockTimeout as e:
            failures += 1
            print(f"  🔒 {e}; try again later")
        except CalmirrorError as e:
            failures += 1
            logger.error(f"❌ Mirror rule {rule.id} failed: {e}")
            print(f"  ❌ Sync failed: {e}")

    return failures


def handle_sync_command(args) -> int:
    """Handle the sync command."""
    try:
        config = load_valid_config(args.config)
        if not config:
            return 1
        setup_logging(config, args.verbose)

        if args.list:
            print("🔄 Mirror Rules:")
            print("=" * 50)
            if not config.mirror_rules:
                print("  No mirror rules configured")
            for rule in config.mirror_rules:
                status = "✅ enabled" if rule.enabled else "❌ disabled"
                print(
                    f"  [{rule.id}] {rule.source_calendar} → {rule.target_calendar} - {status}"
                )
            return 0

        rules = select_rules(args, config)
        if rules is None:
            return 1
        if not rules:
            print("❌ No enabled mirror rules found")
            return 1

        print(f"🚀 Running {len(rules)} mirror rule(s)...")
        failures = run_rules(
            config, rules, force_full_sync=args.full, delete_only=args.delete_only
        )

        if failures:
            print(f"\n⚠️  {failures} of {len(rules)} mirror rule(s) failed")
            return 1
        print("\n🎉 Synchronization complete!")
        return 0

    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        print("\n💡 Use 'calmirror init' to create a new configuration")
        return 1
    except CalmirrorError as e:
        print(f"❌ Error during sync: {e}")
        return 1


def handle_status_command(args) -> int:
    """Show sync token presence, error counters and mapping counts."""
    try:
        config = load_valid_config(args.config)
        if not config:
            return 1
        rules = select_rules(args, config)
        if rules is None:
            return 1

        print("📊 Mirror Status:")
        print("=" * 50)
        for rule in rules:
            settings = config.build_settings(rule)
            with StateDatabase(settings.state_db_path) as db:
                state = db.sync_state_store(settings.pair_key).get_sync_state()
                mapped = db.mapping_store(settings.pair_key).count()
            token = "✅ present" if state.has_token else "❌ absent (next run is full)"
            print(f"  [{rule.id}] {rule.source_calendar} → {rule.target_calendar}")
            print(f"    └─ Sync token: {token}")
            print(
                f"    └─ Consecutive errors: {state.error_count}/{rule.error_threshold}"
            )
            print(f"    └─ Mirrored events: {mapped}")
        return 0

    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        return 1
    except CalmirrorError as e:
        print(f"❌ Error reading status: {e}")
        return 1


def handle_purge_command(args) -> int:
    """Handle the purge command."""
    try:
        config = load_valid_config(args.config)
        if not config:
            return 1
        setup_logging(config, args.verbose)

        rules = select_purge_rules(args, config)
        if not rules:
            return 1

        if not args.dry_run:
            print(f"🗑️  Purging mirrored events of {len(rules)} mirror rule(s)...")
            return 1 if run_rules(config, rules, delete_only=True) else 0

        print("🔍 DRY RUN MODE - No events will be deleted")
        oauth2_config = load_oauth2_config()
        if not oauth2_config:
            print("❌ OAuth2 configuration not found")
            return 1

        services = ServiceCache(config, oauth2_config)
        total = 0
        for rule in rules:
            print(f"\n🔄 Processing mirror rule: [{rule.id}] → {rule.target_calendar}")
            settings = config.build_settings(rule)
            total += preview_purge(services.for_label(rule.target_calendar), settings)

        print(f"\n🔍 DRY RUN COMPLETE - Would delete {total} events")
        return 0

    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        return 1
    except CalmirrorError as e:
        print(f"❌ Error during purge operation: {e}")
        return 1


def handle_auth_command(args) -> int:
    """Handle the auth command."""
    if args.setup:
        print("🔧 Setting up OAuth2 configuration...")
        oauth2_config_path = create_oauth2_config_file()
        print(f"✅ OAuth2 config file created at: {oauth2_config_path}")
        print("\n💡 Next steps:")
        print("   1. Enable the Google Calendar API in Google Cloud Console")
        print("   2. Create OAuth 2.0 desktop credentials")
        print("   3. Edit the config file with your client_id and client_secret")
        print("   4. Run 'calmirror auth' to authenticate")
        return 0

    try:
        oauth2_config = load_oauth2_config()
        if not oauth2_config:
            print("❌ OAuth2 configuration not found")
            print("💡 Run 'calmirror auth --setup' to create the configuration file")
            return 1

        config = Config.from_file(args.config)

        if args.accounts:
            accounts = []
            for account_name in args.accounts:
                account = config.get_account(account_name)
                if not account:
                    print(f"❌ Account '{account_name}' not found in configuration")
                    return 1
                accounts.append(account)
        else:
            accounts = [acc for acc in config.accounts if acc.auth_type == "oauth2"]

        if not accounts:
            print("❌ No OAuth2 accounts found in configuration")
            return 1

        for account in accounts:
            print(f"\n🔐 Authenticating account: {account.name} ({account.email})")
            GoogleAuthenticator(account.name, oauth2_config).authenticate()
            print(f"✅ Successfully authenticated {account.name}")

        print("\n🎉 All accounts authenticated successfully!")
        print("💡 You can now run 'calmirror sync' to start mirroring")
        return 0

    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        return 1
    except Exception as e:
        print(f"❌ Error during authentication: {e}")
        return 1


def handle_config_command(args) -> int:
    """Handle the config command."""
    if args.example:
        print("📋 Example Configuration:")
        print("=" * 50)
        print(create_example_config())
        return 0

    try:
        config = Config.from_file(args.config)
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {args.config}")
        print("\n💡 Use 'calmirror init' to create a new configuration")
        return 1
    except CalmirrorError as e:
        print(f"❌ Error loading configuration: {e}")
        return 1

    print("⚙️ Current Configuration:")
    print("=" * 50)

    print(f"📊 Accounts ({len(config.accounts)}):")
    for account in config.accounts:
        print(f"  • {account.name} ({account.email}) - {account.auth_type}")
        for calendar in account.calendars:
            print(f"    └─ {calendar.label}: {calendar.name} ({calendar.calendar_id})")

    print(f"\n📋 Mirror Rules ({len(config.mirror_rules)}):")
    for rule in config.mirror_rules:
        status = "✅ enabled" if rule.enabled else "❌ disabled"
        print(f"  • [{rule.id}] {rule.source_calendar} → {rule.target_calendar} - {status}")
        print(
            f"       └─ Window: {rule.days_in_past} day(s) back, {rule.days_in_future} day(s) ahead"
        )
        if rule.title_prefix:
            print(f"       └─ Title prefix: '{rule.title_prefix}'")
        if rule.event_color:
            print(f"       └─ Color: {rule.event_color}")

    print(f"\n📁 Data Directory: {config.resolved_data_dir()}")
    print(f"🕒 Timezone: {config.timezone}")
    print(f"📝 Log Level: {config.log_level}")
    if config.log_file:
        print(f"📄 Log File: {config.log_file}")

    errors = config.validate()
    if errors:
        print(f"\n⚠️  Configuration Issues ({len(errors)}):")
        for error in errors:
            print(f"  • {error}")
        return 1

    print("\n✅ Configuration is valid!")
    return 0


def handle_init_command(args) -> int:
    """Handle the init command."""
    print("🚀 Initializing Calmirror configuration structure...")
    ensure_directories()

    config_path = get_default_config_path()
    if config_path.exists() and not args.force:
        print(f"⚠️  Configuration already exists at: {config_path}")
        print("   Use --force to overwrite existing configuration")
        return 1

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(create_example_config())

    print(f"✅ Configuration initialized at: {config_path}")
    print(f"📁 Credentials directory: {get_credentials_dir()}")
    print(f"📁 Config directory: {get_config_dir()}")
    print("\n💡 Next steps:")
    print("   1. Edit the configuration file with your calendar details")
    print("   2. Run 'calmirror auth' to authenticate with Google")
    print("   3. Run 'calmirror sync' from cron or a systemd timer")
    return 0


if __name__ == "__main__":
    sys.exit(main())
