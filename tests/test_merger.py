from itertools import permutations

from license_resolver.merger import merge_groups, select_best, sieve_best, sieve_key, to_expression
from license_resolver.types import (
    Operator,
    OrLater,
    Single,
    Unresolved,
    WithException,
    license_set,
    render,
)


URL_ONLY = Unresolved(source_urls=("https://example.test/LICENSE",))
WITH_TEXT = Unresolved(raw_text="custom terms", source_urls=("https://example.test/LICENSE",))
NAME_ONLY = Unresolved(raw_id="FooCorp License")
PARTIAL = license_set(Operator.OR, [Single("MIT"), Unresolved(raw_id="Custom")])
SET = license_set(Operator.OR, [Single("MIT"), Single("Apache-2.0")])
WITH = WithException(Single("GPL-2.0-only"), "Classpath-exception-2.0")
LATER = OrLater(Single("LGPL-2.1-only"))
MIT = Single("MIT")


def test_to_expression_single_item_is_unchanged():
    assert to_expression([MIT]) is MIT
    assert to_expression([URL_ONLY]) is URL_ONLY


def test_to_expression_empty_is_none_set():
    assert render(to_expression([])) == "NONE"


def test_to_expression_dedupes_to_single():
    assert to_expression([MIT, Single("MIT")]) == MIT


def test_to_expression_is_order_independent():
    items = [Single("MIT"), Single("Apache-2.0"), WITH, Single("MIT")]
    rendered = {render(to_expression(list(order))) for order in permutations(items)}
    assert rendered == {"(Apache-2.0 OR GPL-2.0-only WITH Classpath-exception-2.0 OR MIT)"}


def test_sieve_ranks_identified_before_partial_before_unresolved():
    ranked = sorted([URL_ONLY, WITH_TEXT, NAME_ONLY, PARTIAL, SET, WITH, LATER, MIT], key=sieve_key)
    assert ranked == [WITH, LATER, MIT, SET, PARTIAL, NAME_ONLY, WITH_TEXT, URL_ONLY]


def test_sieve_best_never_prefers_a_worse_candidate():
    candidates = [URL_ONLY, WITH_TEXT, NAME_ONLY, PARTIAL, SET, MIT]
    for left in candidates:
        for right in candidates:
            best = sieve_best(left, right)
            assert sieve_key(best) <= sieve_key(left)
            assert sieve_key(best) <= sieve_key(right)
            assert best == sieve_best(right, left)


def test_declared_identified_beats_unresolved_found():
    assert select_best([[Single("Apache-2.0")], [URL_ONLY]]) == [Single("Apache-2.0")]


def test_found_identified_replaces_unresolved_declared():
    assert select_best([[NAME_ONLY], [Single("MIT")]]) == [Single("MIT")]


def test_larger_identified_found_group_wins():
    declared = [Single("MIT")]
    found = [Single("MIT"), Single("Apache-2.0")]
    assert render(merge_groups([declared, found])) == "(Apache-2.0 OR MIT)"


def test_pairwise_sieve_when_neither_group_is_identified():
    declared = [NAME_ONLY, URL_ONLY]
    found = [URL_ONLY, Single("ISC")]
    assert select_best([declared, found]) == [NAME_ONLY, Single("ISC")]


def test_empty_groups():
    assert select_best([]) == []
    assert select_best([[], []]) == []
    assert render(merge_groups([[], []])) == "NONE"
    assert select_best([[], [MIT]]) == [MIT]


def test_group_size_counts_licenses_not_candidates():
    declared = [Unresolved(raw_id="Foo"), Unresolved(raw_id="Bar")]
    found = [SET]
    assert render(merge_groups([declared, found])) == "(Apache-2.0 OR MIT)"


def test_smaller_identified_group_does_not_replace_larger_one():
    declared = [Single("ISC"), Unresolved(raw_id="Foo")]
    found = [SET, Single("BSD-3-Clause")]
    assert select_best([found, declared]) == [SET, Single("BSD-3-Clause")]
    assert select_best([[MIT], [SET, NAME_ONLY]]) == [MIT, NAME_ONLY]


def test_collapsed_unresolved_keep_all_source_urls():
    first = Unresolved(raw_id="FooCorp License", source_urls=("https://a.example.test/license",))
    second = Unresolved(raw_id="FooCorp License", source_urls=("https://b.example.test/license",))
    assert to_expression([first, second]) == Unresolved(
        raw_id="FooCorp License",
        source_urls=("https://a.example.test/license", "https://b.example.test/license"),
    )
