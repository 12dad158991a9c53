"""Tests for module graph extraction from script bundles."""

from __future__ import annotations

from ccrecover.analyzers.base import node_text
from ccrecover.analyzers.modules import ModuleGraphExtractor
from ccrecover.identifiers import IdentifierResolver
from ccrecover.models import DiagnosticKind
from tests._fixtures.build_builder import ENEMY_UUID, PLAYER_UUID, bundle_script, sample_modules


def test_extracts_sample_modules() -> None:
    outcome = ModuleGraphExtractor().extract(bundle_script(sample_modules(), ["Player", "Enemy"]))

    graph = outcome.value
    assert outcome.diagnostics == []
    assert [record.module_id for record in graph] == ["Player", "Enemy"]
    assert graph.entries == ("Player", "Enemy")

    player = graph.get("Player")
    assert player is not None
    assert player.params == ("require", "module", "exports")
    assert player.requires == (("Enemy", "Enemy"),)
    assert player.dependencies == ("Enemy",)
    assert player.script_uuid == PLAYER_UUID
    assert player.script_name == "Player"
    assert player.exports == ("default",)

    enemy = graph.get("Enemy")
    assert enemy is not None
    assert enemy.dependencies == ()
    assert enemy.script_uuid == ENEMY_UUID


def test_bundle_without_requires_has_no_dependencies(extract_graph) -> None:
    graph = extract_graph(
        {
            "A": ("module.exports = 1;", {}),
            "B": ("exports.value = 2;", {}),
        }
    )

    assert len(graph) == 2
    assert all(record.dependencies == () for record in graph)
    assert graph.get("B").exports == ("value",)


def test_mutual_requires_are_accepted(extract_graph) -> None:
    graph = extract_graph(
        {
            "A": ('var B = require("./B");\nmodule.exports = function () { return B; };', {"./B": "B"}),
            "B": ('var A = require("./A");\nmodule.exports = function () { return A; };', {"./A": "A"}),
        }
    )

    assert graph.get("A").dependencies == ("B",)
    assert graph.get("B").dependencies == ("A",)


def test_requires_inside_shadowing_functions_are_ignored(extract_graph) -> None:
    graph = extract_graph(
        {
            "A": (
                'var helper = function (require) { return require("fake"); };\n'
                'var real = require("B");',
                {"B": "B"},
            ),
            "B": ("module.exports = {};", {}),
        }
    )

    assert graph.get("A").requires == (("B", "B"),)


def test_unmapped_specifiers_stay_external(extract_graph) -> None:
    graph = extract_graph({"A": ('var _ = require("lodash");', {"lodash": None})})
    assert graph.get("A").dependencies == ("lodash",)


def test_named_exports_are_listed_in_order(extract_graph) -> None:
    graph = extract_graph(
        {
            "Util": (
                '"use strict";\n'
                'Object.defineProperty(exports, "__esModule", { value: true });\n'
                "exports.add = function (a, b) { return a + b; };\n"
                "exports.PI = 3.14;\n"
                'exports["default"] = { add: exports.add };',
                {},
            )
        }
    )

    assert graph.get("Util").exports == ("add", "PI", "default")


def test_minified_factories_use_their_own_parameter_names() -> None:
    bundle = (
        "window.__require=function e(t,n,r){return t}({"
        'Game:[function(t,e,o){"use strict";cc._RF.push(e,"abcdef","Game");'
        'var i=t("Board");e.exports=i;cc._RF.pop()},{Board:"Board"}],'
        'Board:[function(t,e,o){o.size=3},{}]'
        '},{},["Game"]);'
    )

    outcome = ModuleGraphExtractor().extract(bundle)
    game = outcome.value.get("Game")

    assert game.params == ("t", "e", "o")
    assert game.dependencies == ("Board",)
    assert game.exports == ("default",)
    assert outcome.value.get("Board").exports == ("size",)
    assert [item.code for item in outcome.diagnostics] == ["script_uuid"]
    assert game.script_uuid is None


def test_embedded_identifiers_include_dictionary_tokens() -> None:
    resolver = IdentifierResolver(["a1", "b2", "c3"])
    graph = ModuleGraphExtractor(resolver).extract(
        bundle_script({"Icon": ('var icon = "b2";\nvar label = "hello";', {})})
    ).value

    assert graph.get("Icon").identifiers == ("b2",)


def test_duplicate_module_names_get_unique_identifiers(extract_graph) -> None:
    graph = extract_graph(
        {
            "1": ('cc._RF.push(module, "x", "Panel");', {}),
            "2": ('cc._RF.push(module, "y", "Panel");', {}),
            "3": ("module.exports = 3;", {}),
        }
    )

    assert [record.name for record in graph] == ["Panel", "Panel_2", "module_3"]


def test_bundle_without_registrations_warns() -> None:
    outcome = ModuleGraphExtractor().extract("console.log('hello');")

    assert len(outcome.value) == 0
    assert [item.code for item in outcome.diagnostics] == ["no_modules"]


def test_broken_module_body_does_not_stop_its_siblings() -> None:
    outcome = ModuleGraphExtractor().extract(
        bundle_script(
            {
                "Good": ('var other = require("Other");\nmodule.exports = other;', {"Other": "Other"}),
                "Broken": ("var value = ;\nmodule.exports = value;", {}),
                "Other": ('var config = require("Config");\nmodule.exports = config;', {"Config": "Config"}),
                "Config": ("module.exports = { speed: 3 };", {}),
            },
            ["Good"],
        )
    )

    graph = outcome.value
    ids = [record.module_id for record in graph]
    assert [module_id for module_id in ids if module_id != "Broken"] == ["Good", "Other", "Config"]
    assert graph.get("Good").dependencies == ("Other",)
    assert graph.get("Other").dependencies == ("Config",)
    assert graph.entries == ("Good",)
    assert "bundle_syntax" in [item.code for item in outcome.diagnostics]
    assert all(item.kind is DiagnosticKind.DEGRADED_PARSE for item in outcome.diagnostics)


def test_duplicate_registrations_keep_the_first() -> None:
    bundle = (
        "window.__require = function e(t, n, r) { return t; }({\n"
        '    "Shared": [function (require, module, exports) { module.exports = 1; }, {}],\n'
        '    "Shared": [function (require, module, exports) { module.exports = 2; }, {}],\n'
        '    "Other": [function (require, module, exports) { module.exports = 3; }, {}]\n'
        "}, {}, []);\n"
    )

    outcome = ModuleGraphExtractor().extract(bundle)

    graph = outcome.value
    assert [record.module_id for record in graph] == ["Shared", "Other"]
    shared = graph.get("Shared")
    assert "module.exports = 1;" in node_text(shared.node, shared.source)
    assert [(item.code, item.subject) for item in outcome.diagnostics] == [("duplicate_module", "Shared")]
