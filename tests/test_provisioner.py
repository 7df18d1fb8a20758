from teams_roster.models import TeamPlan, TeamStatus, UserOutcome
from teams_roster.provisioner import TeamProvisioner


def _outcomes(result):
    return {user.user_principal_name: user.outcome for user in result.users}


def test_creates_missing_team_with_first_owner(config, graph) -> None:
    alice = graph.add_user("alice@contoso.com")
    dave = graph.add_user("dave@contoso.com")
    bob = graph.add_user("bob@contoso.com")
    plan = TeamPlan(
        team_name="Finance",
        owners=["alice@contoso.com", "dave@contoso.com"],
        members=["bob@contoso.com"],
    )

    result = TeamProvisioner(graph, config).provision_team(plan)

    assert result.status == TeamStatus.CREATED
    assert result.team_id == "new-1"
    assert graph.created == [("Finance", alice.id, "", "private")]
    assert graph.added == [("new-1", dave.id, "owner"), ("new-1", bob.id, "member")]
    assert _outcomes(result) == {
        "alice@contoso.com": UserOutcome.INITIAL_OWNER,
        "dave@contoso.com": UserOutcome.ADDED,
        "bob@contoso.com": UserOutcome.ADDED,
    }


def test_existing_team_skips_present_users_and_promotes_members(config, graph) -> None:
    alice = graph.add_user("alice@contoso.com")
    bob = graph.add_user("bob@contoso.com")
    carol = graph.add_user("carol@contoso.com")
    graph.add_team("Finance", team_id="t1", members=[(alice, True), (bob, False), (carol, True)])
    plan = TeamPlan(
        team_name="finance",
        owners=["alice@contoso.com", "bob@contoso.com"],
        members=["carol@contoso.com"],
    )

    result = TeamProvisioner(graph, config).provision_team(plan)

    assert result.status == TeamStatus.EXISTING
    assert graph.created == []
    assert graph.added == []
    assert graph.promoted == [("t1", f"m-{bob.id}", "owner")]
    assert _outcomes(result) == {
        "alice@contoso.com": UserOutcome.ALREADY_PRESENT,
        "bob@contoso.com": UserOutcome.PROMOTED,
        "carol@contoso.com": UserOutcome.ALREADY_PRESENT,
    }


def test_missing_and_disabled_users_are_skipped(config, graph) -> None:
    alice = graph.add_user("alice@contoso.com")
    graph.add_user("eve@contoso.com", enabled=False)
    graph.add_team("Finance", team_id="t1", members=[(alice, True)])
    plan = TeamPlan(
        team_name="Finance",
        owners=["alice@contoso.com"],
        members=["ghost@contoso.com", "eve@contoso.com"],
    )

    result = TeamProvisioner(graph, config).provision_team(plan)

    assert graph.added == []
    assert _outcomes(result)["ghost@contoso.com"] == UserOutcome.USER_NOT_FOUND
    assert _outcomes(result)["eve@contoso.com"] == UserOutcome.USER_DISABLED
    assert not result.has_failures


def test_first_valid_owner_creates_the_team(config, graph) -> None:
    dave = graph.add_user("dave@contoso.com")
    plan = TeamPlan(team_name="Finance", owners=["ghost@contoso.com", "dave@contoso.com"])

    result = TeamProvisioner(graph, config).provision_team(plan)

    assert graph.created[0][1] == dave.id
    assert _outcomes(result)["dave@contoso.com"] == UserOutcome.INITIAL_OWNER


def test_team_without_valid_owner_fails(config, graph) -> None:
    graph.add_user("bob@contoso.com")
    plan = TeamPlan(team_name="Finance", owners=["ghost@contoso.com"], members=["bob@contoso.com"])

    result = TeamProvisioner(graph, config).provision_team(plan)

    assert result.status == TeamStatus.FAILED
    assert "No valid owner" in result.error_details
    assert graph.created == []
    assert graph.added == []


def test_ambiguous_team_name_fails(config, graph) -> None:
    graph.add_user("alice@contoso.com")
    graph.add_team("Finance", team_id="t1")
    graph.add_team("Finance", team_id="t2")

    result = TeamProvisioner(graph, config).provision_team(
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"])
    )

    assert result.status == TeamStatus.FAILED
    assert "Ambiguous" in result.error_details


def test_creation_error_fails_team(config, graph, creation_error) -> None:
    graph.add_user("alice@contoso.com")
    graph.create_error = creation_error

    result = TeamProvisioner(graph, config).provision_team(
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"])
    )

    assert result.status == TeamStatus.FAILED
    assert "quota exceeded" in result.error_details


def test_user_errors_do_not_stop_the_team(config, graph, graph_error) -> None:
    alice = graph.add_user("alice@contoso.com")
    bob = graph.add_user("bob@contoso.com")
    graph.add_user("carol@contoso.com")
    graph.add_team("Finance", team_id="t1", members=[(alice, True)])
    graph.add_errors[bob.id] = graph_error(400, "BadRequest", "cannot add guest")
    graph.user_errors["dave@contoso.com"] = graph_error(503, "ServiceUnavailable", "try later")
    plan = TeamPlan(
        team_name="Finance",
        members=["dave@contoso.com", "bob@contoso.com", "carol@contoso.com"],
    )

    result = TeamProvisioner(graph, config).provision_team(plan)

    outcomes = _outcomes(result)
    assert outcomes["dave@contoso.com"] == UserOutcome.FAILED
    assert outcomes["bob@contoso.com"] == UserOutcome.FAILED
    assert outcomes["carol@contoso.com"] == UserOutcome.ADDED
    assert result.status == TeamStatus.EXISTING
    assert result.has_failures


def test_dry_run_makes_no_changes(config, graph) -> None:
    alice = graph.add_user("alice@contoso.com")
    graph.add_user("bob@contoso.com")
    graph.add_user("carol@contoso.com")
    graph.add_team("Design", team_id="t1", members=[(alice, False)])
    plans = [
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"], members=["bob@contoso.com"]),
        TeamPlan(team_name="Design", owners=["alice@contoso.com"], members=["carol@contoso.com"]),
    ]

    summary = TeamProvisioner(graph, config, dry_run=True).run(plans)

    assert graph.created == graph.added == graph.promoted == []
    finance, design = summary.teams
    assert finance.status == TeamStatus.PLANNED
    assert _outcomes(finance) == {
        "alice@contoso.com": UserOutcome.WOULD_ADD,
        "bob@contoso.com": UserOutcome.WOULD_ADD,
    }
    assert design.status == TeamStatus.EXISTING
    assert _outcomes(design) == {
        "alice@contoso.com": UserOutcome.WOULD_PROMOTE,
        "carol@contoso.com": UserOutcome.WOULD_ADD,
    }
    assert not summary.has_failures


def test_run_looks_each_user_up_once(config, graph) -> None:
    graph.add_user("alice@contoso.com")
    plans = [
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"]),
        TeamPlan(team_name="Design", owners=["ALICE@contoso.com"]),
    ]

    summary = TeamProvisioner(graph, config).run(plans)

    assert graph.lookups == ["alice@contoso.com"]
    assert summary.teams_with_status(TeamStatus.CREATED) == 2
    assert summary.total_added == 2


def test_team_lookup_error_fails_only_that_team(config, graph, graph_error) -> None:
    graph.add_user("alice@contoso.com")
    graph.find_errors["finance"] = graph_error(0, "ConnectTimeout", "timed out")
    plans = [
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"]),
        TeamPlan(team_name="Design", owners=["alice@contoso.com"]),
    ]

    summary = TeamProvisioner(graph, config).run(plans)

    finance, design = summary.teams
    assert finance.status == TeamStatus.FAILED
    assert "timed out" in finance.error_details
    assert design.status == TeamStatus.CREATED
    assert [created[0] for created in graph.created] == ["Design"]
    assert summary.has_failures


def test_member_listing_error_fails_only_that_team(config, graph, graph_error) -> None:
    alice = graph.add_user("alice@contoso.com")
    graph.add_user("bob@contoso.com")
    graph.add_team("Finance", team_id="t1", members=[(alice, True)])
    graph.list_errors["t1"] = graph_error(502, "BadGateway", "upstream unavailable")
    plans = [
        TeamPlan(team_name="Finance", owners=["alice@contoso.com"], members=["bob@contoso.com"]),
        TeamPlan(team_name="Design", owners=["alice@contoso.com"], members=["bob@contoso.com"]),
    ]

    summary = TeamProvisioner(graph, config).run(plans)

    finance, design = summary.teams
    assert finance.status == TeamStatus.FAILED
    assert finance.team_id == "t1"
    assert "upstream unavailable" in finance.error_details
    assert design.status == TeamStatus.CREATED
    assert [added[0] for added in graph.added] == [design.team_id]
