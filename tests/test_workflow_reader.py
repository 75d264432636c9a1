from web2apk.parser.workflow_reader import parse_workflow, read_workflows, find_build_workflow

BUILD_WORKFLOW = """
name: Build APK
on:
  push:
    branches: [main, master]
  workflow_dispatch:
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - run: npx cap sync android
      - uses: actions/upload-artifact@v4
        with:
          name: app-debug
          path: android/app/build/outputs/apk/debug/app-debug.apk
"""

MANUAL_WORKFLOW = """
name: Manual
on: workflow_dispatch
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/upload-artifact@v4
        with:
          name: manual
"""


def test_parse_build_workflow():
    info = parse_workflow(BUILD_WORKFLOW, ".github/workflows/build.yml")
    assert info.name == "Build APK"
    assert info.triggers == ["push", "workflow_dispatch"]
    assert info.uploads_artifact is True
    assert info.artifact_names == ["app-debug"]
    assert info.builds_on_push is True
    assert info.error is None


def test_manual_only_workflow_does_not_build_on_push():
    info = parse_workflow(MANUAL_WORKFLOW, "manual.yml")
    assert info.triggers == ["workflow_dispatch"]
    assert info.builds_on_push is False


def test_invalid_yaml_is_reported():
    info = parse_workflow("on: [push\njobs: {", "broken.yml")
    assert info.error is not None
    assert info.builds_on_push is False


def test_non_mapping():
    assert parse_workflow("- just\n- a list\n", "list.yml").error == "workflow is not a mapping"


def test_read_and_find(tmp_path):
    workflows = tmp_path / ".github" / "workflows"
    workflows.mkdir(parents=True)
    (workflows / "a-manual.yml").write_text(MANUAL_WORKFLOW)
    (workflows / "b-build.yaml").write_text(BUILD_WORKFLOW)
    (workflows / "notes.txt").write_text("ignored")

    found = read_workflows(str(tmp_path))
    assert [w.path for w in found] == [
        ".github/workflows/a-manual.yml",
        ".github/workflows/b-build.yaml",
    ]
    assert find_build_workflow(str(tmp_path)).path == ".github/workflows/b-build.yaml"


def test_no_workflows_dir(tmp_path):
    assert read_workflows(str(tmp_path)) == []
    assert find_build_workflow(str(tmp_path)) is None
