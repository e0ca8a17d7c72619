import pytest

from geras.cwlclient import (
    EnsureError,
    OperationAbortedError,
    ResourceAlreadyExistsError,
    ensure_group_and_stream_across_regions,
    ensure_log_group_exists,
    ensure_log_stream_exists,
)


class FakeClient:
    def __init__(
        self,
        region="us-east-1",
        group_pages=None,
        stream_pages=None,
        create_error=None,
        describe_error=None,
    ):
        self.region = region
        self.group_pages = group_pages or [{"logGroups": []}]
        self.stream_pages = stream_pages or [{"logStreams": []}]
        self.create_error = create_error
        self.describe_error = describe_error
        self.describe_calls = []
        self.created_groups = []
        self.created_streams = []

    def _page(self, pages, token):
        if self.describe_error is not None:
            raise self.describe_error
        index = 0 if token is None else int(token)
        page = dict(pages[index])
        if index + 1 < len(pages):
            page["nextToken"] = str(index + 1)
        return page

    def describe_log_groups(self, *, log_group_name_prefix, next_token=None):
        self.describe_calls.append(("groups", log_group_name_prefix, next_token))
        return self._page(self.group_pages, next_token)

    def describe_log_streams(self, *, log_group_name, log_stream_name_prefix, next_token=None):
        self.describe_calls.append(("streams", log_group_name, log_stream_name_prefix, next_token))
        return self._page(self.stream_pages, next_token)

    def create_log_group(self, *, log_group_name):
        if self.create_error is not None:
            raise self.create_error
        self.created_groups.append(log_group_name)

    def create_log_stream(self, *, log_group_name, log_stream_name):
        if self.create_error is not None:
            raise self.create_error
        self.created_streams.append((log_group_name, log_stream_name))

    def put_log_events(self, *, log_group_name, log_stream_name, log_events):
        return None


def test_group_found_on_later_page_is_not_created():
    client = FakeClient(
        group_pages=[
            {"logGroups": [{"logGroupName": "grp-other"}]},
            {"logGroups": [{"logGroupName": "grp"}]},
        ]
    )
    ensure_log_group_exists(client, "grp")
    assert client.created_groups == []
    assert [call[2] for call in client.describe_calls] == [None, "1"]


def test_group_missing_is_created():
    client = FakeClient(group_pages=[{"logGroups": [{"logGroupName": "grp-prefix"}]}])
    ensure_log_group_exists(client, "grp")
    assert client.created_groups == ["grp"]
    assert client.describe_calls[0][1] == "grp"


@pytest.mark.parametrize("error", [ResourceAlreadyExistsError("exists"), OperationAbortedError("aborted")])
def test_group_create_race_is_ignored(error):
    client = FakeClient(create_error=error)
    ensure_log_group_exists(client, "grp")
    assert client.created_groups == []


def test_group_create_failure_raises():
    client = FakeClient(region="eu-west-1", create_error=RuntimeError("boom"))
    with pytest.raises(EnsureError) as info:
        ensure_log_group_exists(client, "grp")
    assert info.value.region == "eu-west-1"
    assert "create log group" in str(info.value)
    assert "boom" in str(info.value)


def test_group_describe_failure_raises():
    client = FakeClient(describe_error=RuntimeError("denied"))
    with pytest.raises(EnsureError, match="describe log groups"):
        ensure_log_group_exists(client, "grp")
    assert client.created_groups == []


def test_stream_found_is_not_created():
    client = FakeClient(stream_pages=[{"logStreams": [{"logStreamName": "s1"}]}])
    ensure_log_stream_exists(client, "grp", "s1")
    assert client.created_streams == []
    assert client.describe_calls[0][1:3] == ("grp", "s1")


def test_stream_missing_is_created():
    client = FakeClient(
        stream_pages=[
            {"logStreams": [{"logStreamName": "s1-old"}]},
            {"logStreams": []},
        ]
    )
    ensure_log_stream_exists(client, "grp", "s1")
    assert client.created_streams == [("grp", "s1")]


def test_stream_race_is_ignored():
    client = FakeClient(create_error=ResourceAlreadyExistsError("exists"))
    ensure_log_stream_exists(client, "grp", "s1")
    assert client.created_streams == []


def test_stream_failures_raise():
    client = FakeClient(create_error=RuntimeError("boom"))
    with pytest.raises(EnsureError, match="create log stream"):
        ensure_log_stream_exists(client, "grp", "s1")
    client = FakeClient(describe_error=RuntimeError("denied"))
    with pytest.raises(EnsureError, match="describe log streams"):
        ensure_log_stream_exists(client, "grp", "s1")


def test_across_regions_creates_everywhere():
    clients = {}

    def factory(region):
        clients[region] = FakeClient(region=region)
        return clients[region]

    result = ensure_group_and_stream_across_regions(["us-east-1", "eu-west-1"], "grp", "s1", factory)
    assert result is None
    assert sorted(clients) == ["eu-west-1", "us-east-1"]
    for client in clients.values():
        assert client.created_groups == ["grp"]
        assert client.created_streams == [("grp", "s1")]
        assert [call[0] for call in client.describe_calls] == ["groups", "streams"]


def test_across_regions_factory_failure_stops():
    seen = []

    def factory(region):
        seen.append(region)
        if region == "bad":
            raise ValueError("invalid region")
        return FakeClient(region=region)

    with pytest.raises(EnsureError) as info:
        ensure_group_and_stream_across_regions(["us-east-1", "bad", "eu-west-1"], "grp", "s1", factory)
    assert info.value.region == "bad"
    assert "client init" in str(info.value)
    assert seen == ["us-east-1", "bad"]


def test_across_regions_propagates_ensure_failure():
    def factory(region):
        return FakeClient(region=region, create_error=RuntimeError("boom"))

    with pytest.raises(EnsureError, match="create log group"):
        ensure_group_and_stream_across_regions(["us-east-1"], "grp", "s1", factory)