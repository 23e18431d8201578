from sitebuilder.services.import_graph import (
    collect_import_graph,
    extract_import_specifiers,
    find_path_match,
    resolve_import_path,
)

ENTRY = "landing/index.tsx"


def _component(name: str, *imports: str) -> str:
    lines = [f'import {spec.rsplit("/", 1)[-1].replace("-", "_")} from "{spec}";' for spec in imports]
    lines.append(f"export default function {name}() {{ return <div>{name}</div>; }}")
    return "\n".join(lines)


def test_extract_import_specifiers_keeps_project_imports_only():
    source = """
import React, { useState } from "react";
import Hero from "./sections/Hero";
import type { Props } from "../types";
import { Button } from '@/components/Button';
export { Footer } from "./sections/Footer";
import "./styles.css";
const Lazy = React.lazy(() => import("./pages/About"));
import Hero2 from "./sections/Hero";
"""
    assert extract_import_specifiers(source) == [
        "./sections/Hero",
        "../types",
        "@/components/Button",
        "./sections/Footer",
        "./styles.css",
        "./pages/About",
    ]


def test_resolve_import_path():
    assert resolve_import_path(ENTRY, "./sections/Hero") == "landing/sections/Hero.tsx"
    assert resolve_import_path("landing/sections/Hero.tsx", "../lib/util.ts") == "landing/lib/util.ts"
    assert resolve_import_path("landing/pages/About.tsx", "@/components/Button") == "landing/components/Button.tsx"
    assert resolve_import_path(ENTRY, "../../etc/passwd") is None
    assert resolve_import_path(ENTRY, "react") is None


def test_find_path_match_fallbacks():
    available = {
        "landing/sections/Hero.tsx": "",
        "landing/lib/format.ts": "",
        "landing/components/index.tsx": "",
    }
    assert find_path_match("landing/sections/hero.tsx", available) == "landing/sections/Hero.tsx"
    assert find_path_match("landing/lib/format.tsx", available) == "landing/lib/format.ts"
    assert find_path_match("landing/components.tsx", available) == "landing/components/index.tsx"
    assert find_path_match("landing/sections/Nope.tsx", available) is None


def test_collects_reachable_files_only():
    available = {
        ENTRY: _component("App", "./sections/Hero", "./sections/Footer"),
        "landing/sections/Hero.tsx": _component("Hero", "../components/Button"),
        "landing/sections/Footer.tsx": _component("Footer"),
        "landing/components/Button.tsx": _component("Button"),
        "landing/sections/Unused.tsx": _component("Unused"),
    }

    graph = collect_import_graph(ENTRY, available)

    assert list(graph.files) == [
        ENTRY,
        "landing/sections/Hero.tsx",
        "landing/sections/Footer.tsx",
        "landing/components/Button.tsx",
    ]
    assert graph.resolutions[ENTRY] == {
        "./sections/Hero": "landing/sections/Hero.tsx",
        "./sections/Footer": "landing/sections/Footer.tsx",
    }
    assert graph.resolutions["landing/sections/Hero.tsx"] == {
        "../components/Button": "landing/components/Button.tsx",
    }
    assert graph.warnings == []


def test_unresolved_import_is_dropped_with_warning():
    available = {ENTRY: _component("App", "./sections/Missing")}

    graph = collect_import_graph(ENTRY, available)

    assert list(graph.files) == [ENTRY]
    assert graph.resolutions == {}
    assert graph.warnings == [f"Unresolved import './sections/Missing' in {ENTRY}"]


def test_cycles_terminate():
    available = {
        ENTRY: _component("App", "./index", "./sections/A"),
        "landing/sections/A.tsx": _component("A", "./B"),
        "landing/sections/B.tsx": _component("B", "./A", "../index"),
    }

    graph = collect_import_graph(ENTRY, available)

    assert set(graph.files) == {ENTRY, "landing/sections/A.tsx", "landing/sections/B.tsx"}
    assert graph.resolutions["landing/sections/B.tsx"] == {
        "./A": "landing/sections/A.tsx",
        "../index": ENTRY,
    }
    assert graph.warnings == []


def test_file_cap_limits_fan_out():
    imports = [f"./parts/Part{i}" for i in range(60)]
    available = {ENTRY: _component("App", *imports)}
    for i in range(60):
        available[f"landing/parts/Part{i}.tsx"] = _component(f"Part{i}")

    graph = collect_import_graph(ENTRY, available, max_files=50)

    assert len(graph.files) == 50
    assert len(graph.warnings) == 11
    assert all("exceeds file limit 50" in w for w in graph.warnings)


def test_depth_cap_limits_chains():
    available = {ENTRY: _component("App", "./chain/Link1")}
    for i in range(1, 15):
        available[f"landing/chain/Link{i}.tsx"] = _component(f"Link{i}", f"./Link{i + 1}")

    graph = collect_import_graph(ENTRY, available, max_depth=10)

    assert len(graph.files) == 11
    assert "landing/chain/Link10.tsx" in graph.files
    assert "landing/chain/Link11.tsx" not in graph.files
    assert graph.warnings == ["Import './Link11' in landing/chain/Link10.tsx exceeds depth limit 10"]


def test_missing_entry_reports_warning():
    graph = collect_import_graph(ENTRY, {"landing/sections/Hero.tsx": "export default () => null;"})

    assert graph.files == {}
    assert graph.warnings == [f"Entry {ENTRY} not found"]
