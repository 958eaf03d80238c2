"""
test_rules.py - Tests for the individual detection rules
"""

from ghascan.rules.injection import CodeInjectionRule, CommandExecutionRule, UnsafeInputAssignRule
from ghascan.rules.supply_chain import RepojackableRule, UnpinnedActionRule
from ghascan.rules.triggers import PwnRequestRule, WorkflowRunRule


def test_command_execution_flags_interpolated_title(load_action, insecure_workflow_content):
    action = load_action(insecure_workflow_content)

    findings = CommandExecutionRule().scan(action)

    assert len(findings) == 1
    finding = findings[0]
    assert finding.rule_id == "CMD_EXEC"
    assert (finding.job, finding.step) == ("build", "Greet")
    assert finding.details == {
        "run_lineno": 1,
        "line": 'echo "${{ github.event.pull_request.title }}"',
        "value": "github.event.pull_request.title",
    }
    assert "Run line 1" in finding.description()
    assert "github.event.pull_request.title" in finding.description()


def test_command_execution_reports_every_line(load_action):
    workflow = """
on: issues
jobs:
  triage:
    steps:
      - run: |
          echo "${{ github.event.issue.title }}"
          ls
          echo "${{ github.event.issue.body }}"
"""
    findings = CommandExecutionRule().scan(load_action(workflow))

    assert sorted((f.details["run_lineno"], f.details["value"]) for f in findings) == [
        (0, "github.event.issue.title"),
        (2, "github.event.issue.body"),
    ]
    assert all(f.step == 0 for f in findings)


def test_command_execution_ignores_safe_values(load_action, sample_workflow_content):
    workflow = """
on: push
jobs:
  build:
    steps:
      - run: echo "${{ github.sha }}" "${{ env.TITLE }}"
"""
    assert CommandExecutionRule().scan(load_action(workflow)) == []
    assert CommandExecutionRule().scan(load_action(sample_workflow_content, name="other")) == []


def test_command_execution_in_composite_action_traces_inputs(fake_github, registry, composite_action_content):
    workflow = """
on: pull_request
jobs:
  build:
    steps:
      - name: Say hi
        uses: acme/greeter@v1
        with:
          who: ${{ github.head_ref }}
      - uses: acme/greeter@v1
        with:
          greeting: hi
"""
    fake_github.add_repository("acme", "app", {".github/workflows/ci.yml": workflow})
    fake_github.add_repository("acme", "greeter", {"action.yml": composite_action_content}, refs=["v1"])
    parent = registry.action(registry.repository("acme", "app"), ".github/workflows/ci.yml")
    greeter = parent.recursive_actions()[0]

    findings = CommandExecutionRule().scan(greeter)

    assert len(findings) == 1
    finding = findings[0]
    assert (finding.job, finding.step) == ("Greeter", "Greet")
    assert finding.details["value"] == "inputs.who"

    finding.prereport()
    assert finding.details["set_in"] == [
        {"url": parent.url, "job": "build", "step": "Say hi", "with": {"who": "${{ github.head_ref }}"}}
    ]


def test_input_tracing_ignores_non_input_values(load_action, insecure_workflow_content):
    finding = CommandExecutionRule().scan(load_action(insecure_workflow_content))[0]

    finding.prereport()

    assert "set_in" not in finding.details


def test_code_injection_in_github_script(load_action):
    workflow = """
on: issue_comment
jobs:
  reply:
    steps:
      - name: Reply
        uses: actions/github-script@v7
        with:
          script: |
            const body = `${{ github.event.comment.body }}`
            console.log(body)
      - name: Not a script
        run: echo "${{ github.event.comment.body }}"
"""
    findings = CodeInjectionRule().scan(load_action(workflow))

    assert len(findings) == 1
    assert findings[0].step == "Reply"
    assert findings[0].details == {
        "run_lineno": 0,
        "line": "const body = `${{ github.event.comment.body }}`",
        "value": "github.event.comment.body",
    }
    assert "actions/github-script" in findings[0].description()


def test_unsafe_input_assign(load_action):
    workflow = """
on: issues
jobs:
  label:
    steps:
      - name: Label
        uses: acme/labeler@v1
        with:
          title: ${{ github.event.issue.title }}
          color: red
"""
    findings = UnsafeInputAssignRule().scan(load_action(workflow))

    assert len(findings) == 1
    assert findings[0].step == "Label"
    assert findings[0].details == {
        "with_item": {"title": "${{ github.event.issue.title }}"},
        "value": ["github.event.issue.title"],
    }
    assert "github.event.issue.title" in findings[0].description()


def test_pwn_request_lists_compromisable_steps(load_action, insecure_workflow_content):
    findings = PwnRequestRule().scan(load_action(insecure_workflow_content))

    assert len(findings) == 1
    finding = findings[0]
    assert (finding.job, finding.step) == ("build", "Checkout")
    assert finding.details["ref"] == "github.event.pull_request.head.sha"
    assert finding.details["potentially_compromisable_steps"] == [
        {"step": "Build", "why": [{"run": "npm install"}]},
        {"step": "Local", "why": "uses: ./.github/actions/setup"},
    ]
    assert "pull_request_target" in finding.description()


def test_pwn_request_merge_ref_and_unnamed_steps(load_action):
    workflow = """
on: [pull_request_target]
jobs:
  test:
    steps:
      - run: make before
      - uses: actions/checkout@v4
        with:
          ref: refs/pull/${{ github.event.number }}/merge
      - run: |
          echo start
          make test
"""
    findings = PwnRequestRule().scan(load_action(workflow))

    assert len(findings) == 1
    assert findings[0].step == 1
    assert findings[0].details["ref"] == "refs/pull/${{ github.event.number }}/merge"
    assert findings[0].details["potentially_compromisable_steps"] == [
        {"step": 2, "why": [{"run": "make test"}]},
    ]


def test_pwn_request_requires_pull_request_target(load_action, insecure_workflow_content):
    workflow = insecure_workflow_content.replace("pull_request_target", "pull_request")

    assert PwnRequestRule().scan(load_action(workflow)) == []


def test_workflow_run_checkout(load_action):
    workflow = """
name: Deploy preview
on:
  workflow_run:
    workflows: [CI]
    types: [completed]
jobs:
  preview:
    if: github.event.workflow_run.conclusion == 'success'
    steps:
      - name: Checkout
        uses: actions/checkout@v4
        with:
          ref: ${{ github.event.workflow_run.head_sha }}
      - run: npm ci
"""
    findings = WorkflowRunRule().scan(load_action(workflow))

    assert len(findings) == 1
    assert (findings[0].job, findings[0].step) == ("preview", "Checkout")
    assert findings[0].details == {
        "on": {"workflow_run": {"workflows": ["CI"], "types": ["completed"]}},
        "if": "github.event.workflow_run.conclusion == 'success'",
        "uses": "actions/checkout@v4",
        "with": {"ref": "${{ github.event.workflow_run.head_sha }}"},
    }
    assert "${{ github.event.workflow_run.head_sha }}" in findings[0].description()


def test_workflow_run_requires_trigger(load_action):
    workflow = """
on: push
jobs:
  build:
    steps:
      - uses: actions/checkout@v4
        with:
          ref: ${{ github.event.workflow_run.head_sha }}
"""
    assert WorkflowRunRule().scan(load_action(workflow)) == []


def test_unpinned_action(load_action, insecure_workflow_content, sample_workflow_content):
    findings = UnpinnedActionRule().scan(load_action(insecure_workflow_content))

    assert [(f.job, f.step, f.details) for f in findings] == [
        ("build", "Checkout", {"uses": "actions/checkout@v3", "ref": "v3"}),
    ]
    assert "branch/tag v3" in findings[0].description()
    assert UnpinnedActionRule().scan(load_action(sample_workflow_content, name="pinned")) == []


def test_unpinned_action_without_ref(load_action):
    workflow = """
on: push
jobs:
  build:
    steps:
      - uses: acme/tool
"""
    findings = UnpinnedActionRule().scan(load_action(workflow))

    assert [f.details for f in findings] == [{"uses": "acme/tool", "ref": ""}]
    assert findings[0].step == 0


def test_repojackable_redirect(fake_github, registry):
    fake_github.add_repository("acme", "renamed", {"action.yml": "name: renamed"})
    fake_github.statuses["https://github.com/acme/renamed"] = 301
    action = registry.action_from_url("https://github.com/acme/renamed")

    findings = RepojackableRule(fake_github.status_code).scan(action)

    assert len(findings) == 1
    assert findings[0].details == {"reason": "repository redirect"}
    assert findings[0].job is None and findings[0].step is None


def test_repojackable_probes_name_written_in_uses(fake_github, registry):
    fake_github.add_repository("newowner", "tool", {"action.yml": "name: tool"})
    fake_github.rename("oldowner", "tool", "newowner", "tool")
    probed = []

    def probe(url):
        probed.append(url)
        return fake_github.status_code(url)

    action = registry.action_from_uses(None, "oldowner/tool@main")
    findings = RepojackableRule(probe).scan(action)

    assert probed == ["https://github.com/oldowner/tool"]
    assert [f.details for f in findings] == [{"reason": "repository redirect"}]


def test_repojackable_missing_organisation(fake_github, registry):
    fake_github.statuses["https://github.com/ghost"] = 404
    action = registry.action_from_uses(None, "ghost/missing@v1")

    findings = RepojackableRule(fake_github.status_code).scan(action)

    assert [f.details for f in findings] == [{"reason": "organisation not found"}]
    assert "organisation not found" in findings[0].description()


def test_repojackable_probes_each_url_once(fake_github, registry):
    fake_github.add_repository("acme", "app", {"a/action.yml": "name: a", "b/action.yml": "name: b"})
    probed = []

    def probe(url):
        probed.append(url)
        return 200

    rule = RepojackableRule(probe)
    for action in registry.repository("acme", "app").actions():
        assert rule.scan(action) == []

    assert sorted(probed) == ["https://github.com/acme", "https://github.com/acme/app"]
