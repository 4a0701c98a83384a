import subprocess

import pytest

NOT_FOUND = "ERROR: (gcloud.compute.{collection}.describe) Could not fetch resource:\n - The resource '{name}' was not found"


class FakeGCloudCLI:
    """Stands in for the gcloud binary: keeps a registry of names and records every call."""

    def __init__(self, existing=(), fail=(), describe_errors=None, ip_address="203.0.113.10"):
        self.existing = set(existing)
        self.fail = set(fail)
        self.describe_errors = describe_errors or {}
        self.ip_address = ip_address
        self.calls = []

    def __call__(self, args):
        _, collection, verb, name = args[:4]
        self.calls.append((verb, name))

        if (verb, name) in self.fail:
            return subprocess.CompletedProcess(args, 1, "", f"ERROR: {verb} {name} failed")

        if verb == "describe":
            if name in self.describe_errors:
                return subprocess.CompletedProcess(args, 1, "", self.describe_errors[name])
            if name not in self.existing:
                return subprocess.CompletedProcess(args, 1, "", NOT_FOUND.format(collection=collection, name=name))
            if "--format=get(address)" in args:
                return subprocess.CompletedProcess(args, 0, self.ip_address + "\n", "")
            return subprocess.CompletedProcess(args, 0, f"name: {name}\n", "")

        if verb == "create":
            self.existing.add(name)
        elif verb == "delete":
            self.existing.discard(name)
        return subprocess.CompletedProcess(args, 0, "", "")

    def verbs(self, verb):
        return [name for v, name in self.calls if v == verb]


@pytest.fixture
def gcloud_cli():
    return FakeGCloudCLI()


@pytest.fixture
def site_dir(tmp_path):
    build = tmp_path / "build"
    (build / "static" / "css").mkdir(parents=True)
    (build / "index.html").write_text("<!DOCTYPE html><html><body>hi</body></html>")
    (build / "static" / "app.js").write_text("console.log('hi');")
    (build / "static" / "css" / "app.css").write_text("body { margin: 0; }")
    return build
