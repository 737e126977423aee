"""Tests for CI detection and option assembly."""

import asyncio

import httpx
import pytest

from edgeship.ci.resolver import (
    CIEnvironmentResolver,
    CIProvider,
    NameResolver,
    infer_environment,
    secret_resolver,
    variable_resolver,
)
from edgeship.config import DeployConfig, ProfileConfig
from edgeship.core.exceptions import AuthenticationError, MissingSecretsError


def resolver_for(make_process, config: ProfileConfig | None = None, transport=None, **environ) -> CIEnvironmentResolver:
    return CIEnvironmentResolver(make_process(**environ), config or ProfileConfig(), transport=transport)


class TestProviderDetection:
    """Tests for provider detection."""

    @pytest.mark.parametrize(
        "environ,expected",
        [
            ({"GITHUB_ACTIONS": "true"}, CIProvider.GITHUB),
            ({"GITLAB_CI": "true"}, CIProvider.GITLAB),
            ({"JENKINS_URL": "https://ci.example.com"}, CIProvider.JENKINS),
            ({"TF_BUILD": "True"}, CIProvider.AZURE),
            ({"AZURE_PIPELINES_BUILD_ID": "42"}, CIProvider.AZURE),
            ({"CIRCLECI": "true"}, CIProvider.CIRCLECI),
            ({}, CIProvider.UNKNOWN),
        ],
    )
    def test_detect(self, make_process, environ, expected) -> None:
        context = resolver_for(make_process, **environ).resolve()
        assert context.provider == expected

    def test_empty_sentinel_is_unset(self, make_process) -> None:
        context = resolver_for(make_process, GITHUB_ACTIONS="").resolve()
        assert context.provider == CIProvider.UNKNOWN

    def test_github_before_gitlab(self, make_process) -> None:
        context = resolver_for(make_process, GITHUB_ACTIONS="true", GITLAB_CI="true").resolve()
        assert context.provider == CIProvider.GITHUB


class TestInference:
    """Tests for environment inference."""

    @pytest.mark.parametrize(
        "provider,ref,event,branch,expected",
        [
            (CIProvider.GITHUB, "refs/heads/main", "push", "main", "production"),
            (CIProvider.GITHUB, "refs/heads/staging", "push", "staging", "staging"),
            (CIProvider.GITHUB, "refs/pull/7/merge", "pull_request", "feature", "preview"),
            (CIProvider.GITHUB, "refs/heads/feature", "push", "feature", "development"),
            (CIProvider.GITLAB, "master", "push", "master", "production"),
            (CIProvider.GITLAB, "staging", "push", "staging", "staging"),
            (CIProvider.GITLAB, "feature", "merge_request_event", "feature", "preview"),
            (CIProvider.JENKINS, None, None, "main", "production"),
            (CIProvider.CIRCLECI, None, None, "staging", "staging"),
            (CIProvider.UNKNOWN, None, None, "unknown", "development"),
        ],
    )
    def test_rules(self, provider, ref, event, branch, expected) -> None:
        assert infer_environment(provider, ref, event, branch) == expected

    def test_github_main_push_is_production_with_rollback(self, make_process) -> None:
        """Test a push to main deploys to production with production defaults."""
        resolver = resolver_for(
            make_process,
            GITHUB_ACTIONS="true",
            GITHUB_REF="refs/heads/main",
            GITHUB_REF_NAME="main",
            GITHUB_EVENT_NAME="push",
            GITHUB_SHA="abc123",
            GITHUB_REPOSITORY="acme/site",
        )

        context = resolver.resolve()
        options = resolver.build_options(context.environment)

        assert context.environment == "production"
        assert context.branch == "main"
        assert context.commit == "abc123"
        assert context.repository == "acme/site"
        assert options.rollback_enabled is True
        assert options.run_post_deploy_tests is True

    def test_pull_request_uses_head_branch(self, make_process) -> None:
        context = resolver_for(
            make_process,
            GITHUB_ACTIONS="true",
            GITHUB_HEAD_REF="feature/login",
            GITHUB_REF_NAME="7/merge",
            GITHUB_EVENT_NAME="pull_request",
        ).resolve()

        assert context.branch == "feature/login"
        assert context.environment == "preview"

    def test_origin_prefix_stripped(self, make_process) -> None:
        context = resolver_for(make_process, JENKINS_URL="https://ci", GIT_BRANCH="origin/staging").resolve()

        assert context.branch == "staging"
        assert context.environment == "staging"

    def test_unknown_defaults(self, make_process) -> None:
        context = resolver_for(make_process).resolve()

        assert context.branch == "unknown"
        assert context.commit == "unknown"
        assert context.environment == "development"

    def test_explicit_environment_wins(self, make_process) -> None:
        resolver = resolver_for(make_process, GITHUB_ACTIONS="true", GITHUB_REF_NAME="main")
        assert resolver.resolve("staging").environment == "staging"

    def test_inference_is_pure(self, make_process) -> None:
        """Test the same snapshot always gives the same answer."""
        environ = {"GITLAB_CI": "true", "CI_COMMIT_REF_NAME": "main", "CI_COMMIT_SHA": "f00"}
        first = resolver_for(make_process, **environ).resolve()
        second = resolver_for(make_process, **environ).resolve()
        assert first == second


class TestNameResolution:
    """Tests for variable and secret name resolution."""

    def test_variables(self) -> None:
        resolver = variable_resolver("production", ["VITE_", "PUBLIC_"])
        environ = {
            "NODE_ENV": "production",
            "PRODUCTION_API_URL": "https://api",
            "VITE_TITLE": "Site",
            "PUBLIC_KEY": "pk",
            "STAGING_API_URL": "https://staging",
            "HOME": "/root",
            "VITE_EMPTY": "",
        }

        assert resolver.collect(environ) == {
            "NODE_ENV": "production",
            "PRODUCTION_API_URL": "https://api",
            "VITE_TITLE": "Site",
            "PUBLIC_KEY": "pk",
        }

    def test_environment_specific_secret_wins(self) -> None:
        resolver = secret_resolver("staging", ["DATABASE_URL", "API_SECRET_KEY"])
        environ = {
            "DATABASE_URL": "postgres://shared",
            "STAGING_DATABASE_URL": "postgres://staging",
            "API_SECRET_KEY": "k",
            "PRODUCTION_API_SECRET_KEY": "prod-only",
        }

        assert resolver.collect(environ) == {
            "DATABASE_URL": "postgres://staging",
            "API_SECRET_KEY": "k",
        }

    def test_no_keys(self) -> None:
        assert secret_resolver("staging", []).collect({"DATABASE_URL": "x"}) == {}

    def test_earlier_rule_wins_regardless_of_name_order(self) -> None:
        resolver = NameResolver([(r"Z_(\w+)", lambda m: m.group(1)), (r"(\w+)", lambda m: m.group(1))])
        assert resolver.collect({"Z_KEY": "first", "KEY": "second"}) == {"KEY": "first"}

    def test_resolve_name(self) -> None:
        resolver = secret_resolver("production", ["DATABASE_URL"])
        assert resolver.resolve_name("PRODUCTION_DATABASE_URL") == (0, "DATABASE_URL")
        assert resolver.resolve_name("DATABASE_URL") == (1, "DATABASE_URL")
        assert resolver.resolve_name("DATABASE_URL_EXTRA") is None

    def test_build_options_collects(self, make_process) -> None:
        resolver = resolver_for(
            make_process,
            STAGING_DATABASE_URL="postgres://staging",
            VITE_MODE="staging",
        )

        options = resolver.build_options("staging", dry_run=True)

        assert options.secrets == {"DATABASE_URL": "postgres://staging"}
        assert options.environment_variables == {
            "STAGING_DATABASE_URL": "postgres://staging",
            "VITE_MODE": "staging",
        }
        assert options.dry_run is True
        assert options.rollback_enabled is False

    def test_build_options_merges_caller_maps(self, make_process) -> None:
        resolver = resolver_for(make_process, DATABASE_URL="postgres://collected", VITE_MODE="ci")

        options = resolver.build_options(
            "staging",
            secrets={"DATABASE_URL": "postgres://caller", "STRIPE_KEY": "sk"},
            environment_variables={"VITE_API": "https://api.example.com"},
        )

        assert options.secrets == {"DATABASE_URL": "postgres://caller", "STRIPE_KEY": "sk"}
        assert options.environment_variables == {"VITE_MODE": "ci", "VITE_API": "https://api.example.com"}


class TestSecrets:
    """Tests for required secret validation."""

    def test_missing_listed_exactly(self, make_process) -> None:
        resolver = resolver_for(make_process, CLOUDFLARE_API_TOKEN="tok")

        with pytest.raises(MissingSecretsError) as exc_info:
            resolver.validate_secrets()

        assert exc_info.value.missing == ["CLOUDFLARE_ACCOUNT_ID"]
        assert str(exc_info.value) == "Missing required secrets: CLOUDFLARE_ACCOUNT_ID"

    def test_all_present(self, make_process) -> None:
        resolver = resolver_for(make_process, CLOUDFLARE_API_TOKEN="tok", CLOUDFLARE_ACCOUNT_ID="acc")
        resolver.validate_secrets()

    def test_configured_required_secrets(self, make_process) -> None:
        config = ProfileConfig(deploy=DeployConfig(required_secrets=["A", "B", "C"]))
        resolver = resolver_for(make_process, config=config, B="set")

        with pytest.raises(MissingSecretsError) as exc_info:
            resolver.validate_secrets()

        assert exc_info.value.missing == ["A", "C"]


class TestCredentials:
    """Tests for platform credential verification."""

    def test_valid_token(self, make_process) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"success": True, "result": {"status": "active"}})

        resolver = resolver_for(make_process, transport=httpx.MockTransport(handler), CLOUDFLARE_API_TOKEN="tok")

        result = asyncio.run(resolver.verify_credentials())

        assert result == {"status": "active"}
        assert seen["path"] == "/client/v4/user/tokens/verify"
        assert seen["auth"] == "Bearer tok"

    def test_rejected_token(self, make_process) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"success": False, "errors": [{"message": "Invalid API Token"}]})
        )
        resolver = resolver_for(make_process, transport=transport, CLOUDFLARE_API_TOKEN="bad")

        with pytest.raises(AuthenticationError) as exc_info:
            asyncio.run(resolver.verify_credentials())

        assert exc_info.value.status_code == 401
        assert "Invalid API Token" in str(exc_info.value)

    def test_unsuccessful_envelope(self, make_process) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"success": False, "errors": []}))
        resolver = resolver_for(make_process, transport=transport, CLOUDFLARE_API_TOKEN="tok")

        with pytest.raises(AuthenticationError):
            asyncio.run(resolver.verify_credentials())

    def test_missing_token(self, make_process) -> None:
        with pytest.raises(AuthenticationError, match="not configured"):
            asyncio.run(resolver_for(make_process).verify_credentials())
