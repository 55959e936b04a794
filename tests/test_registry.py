"""
Tests for the registry client: retries, login, connectivity and tag pagination.
"""

from unittest.mock import MagicMock, call

import docker
import pytest

from dropletpilot.errors import (ConnectivityError, FatalAuthError, PullFailed, PushFailed,
                                 RegistryApiError)
from dropletpilot.registry import RegistryClient
from dropletpilot.registry_api import TagPage

REPO = "registry.example.com/acme/webapp"


class TestRegistryClient:
    """Test registry client operations."""

    @pytest.fixture
    def docker_client(self):
        return MagicMock()

    @pytest.fixture
    def api(self):
        return MagicMock()

    @pytest.fixture
    def client(self, docker_client, api, config, console, logger, sleep):
        return RegistryClient(docker_client, api, config, console, logger, sleep=sleep)

    # pull / push

    def test_pull_succeeds_first_attempt(self, client, docker_client, sleep):
        client.pull_with_retry(f"{REPO}:latest")

        docker_client.images.pull.assert_called_once_with(REPO, tag="latest")
        sleep.assert_not_called()

    def test_pull_retry_bound(self, client, docker_client, sleep):
        docker_client.images.pull.side_effect = docker.errors.APIError("registry unavailable")

        with pytest.raises(PullFailed):
            client.pull_with_retry(f"{REPO}:latest")

        assert docker_client.images.pull.call_count == 3
        assert sleep.call_args_list == [call(5), call(10)]
        assert sum(c.args[0] for c in sleep.call_args_list) == 15

    def test_pull_recovers_on_second_attempt(self, client, docker_client, sleep):
        image = MagicMock()
        docker_client.images.pull.side_effect = [docker.errors.APIError("timeout"), image]

        assert client.pull_with_retry(f"{REPO}:latest") is image
        assert docker_client.images.pull.call_count == 2
        sleep.assert_called_once_with(5)

    def test_push_stream_error_counts_as_failure(self, client, docker_client, sleep):
        docker_client.images.push.side_effect = lambda *a, **kw: iter([
            {"status": "Preparing"},
            {"error": "denied: requested access to the resource is denied"},
        ])

        with pytest.raises(PushFailed):
            client.push_with_retry(f"{REPO}:previous")

        assert docker_client.images.push.call_count == 3
        assert sleep.call_count == 2

    def test_push_success(self, client, docker_client, sleep):
        docker_client.images.push.return_value = iter([{"status": "Pushed"}, {"status": "previous: digest: sha256:abc"}])

        client.push_with_retry(f"{REPO}:previous")

        docker_client.images.push.assert_called_once_with(REPO, tag="previous", stream=True, decode=True)
        sleep.assert_not_called()

    # login / connectivity

    def test_login_uses_token_for_both_credentials(self, client, docker_client):
        client.login()

        docker_client.login.assert_called_once_with(
            username="secret-token", password="secret-token", registry="registry.example.com"
        )

    def test_login_failure_is_fatal(self, client, docker_client):
        docker_client.login.side_effect = docker.errors.APIError("unauthorized")

        with pytest.raises(FatalAuthError):
            client.login()

    def test_connectivity_retries_then_fails(self, client, api, sleep):
        api.ping_registry.side_effect = RegistryApiError("connection refused")

        assert client.check_connectivity() is False
        assert api.ping_registry.call_count == 3
        assert sleep.call_args_list == [call(5), call(10)]

    def test_connectivity_success(self, client, api, sleep):
        api.ping_registry.return_value = True

        assert client.check_connectivity() is True
        sleep.assert_not_called()

    def test_ensure_connectivity_raises(self, client, api):
        api.ping_registry.side_effect = RegistryApiError("no route to host")

        with pytest.raises(ConnectivityError):
            client.ensure_connectivity()

    # tags

    def test_list_tags_follows_cursor(self, client, api):
        api.list_tags_page.side_effect = [
            TagPage(tags=["latest", "sha-1"], next_cursor="page2"),
            TagPage(tags=["sha-2"], next_cursor="page3"),
            TagPage(tags=["previous"], next_cursor=None),
        ]

        names = [t.name for t in client.list_tags()]

        assert names == ["latest", "sha-1", "sha-2", "previous"]
        pages = [c.args[1] for c in api.list_tags_page.call_args_list]
        assert pages == [1, 2, 3]
        assert api.list_tags_page.call_args_list[0].args[0] == "webapp"

    def test_list_tags_is_lazy(self, client, api):
        tags = client.list_tags()

        api.list_tags_page.assert_not_called()
        api.list_tags_page.return_value = TagPage(tags=["latest"])
        assert [t.name for t in tags] == ["latest"]

    def test_list_tags_yields_each_tag_once(self, client, api):
        api.list_tags_page.side_effect = [
            TagPage(tags=["a", "b"], next_cursor="2"),
            TagPage(tags=["b", "c"]),
        ]

        assert [t.name for t in client.list_tags()] == ["a", "b", "c"]

    def test_list_tags_page_cap(self, docker_client, api, config, console, logger, sleep):
        client = RegistryClient(docker_client, api, config, console, logger, sleep=sleep, max_pages=5)
        api.list_tags_page.side_effect = lambda repo, page, per_page: TagPage(
            tags=[f"tag-{page}"], next_cursor="again"
        )

        names = [t.name for t in client.list_tags()]

        assert len(names) == 5
        assert api.list_tags_page.call_count == 5

    def test_list_tags_propagates_api_errors(self, client, api):
        api.list_tags_page.side_effect = RegistryApiError("HTTP 401")

        with pytest.raises(RegistryApiError):
            list(client.list_tags())

    def test_delete_tag_failure_is_not_raised(self, client, api):
        api.delete_tag.side_effect = RegistryApiError("HTTP 404")

        assert client.delete_tag("sha-1") is False
        api.delete_tag.assert_called_once_with("webapp", "sha-1")

    def test_delete_tag_success(self, client, api):
        assert client.delete_tag("sha-1") is True
