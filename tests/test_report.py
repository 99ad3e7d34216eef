from asset_size_diff import build_output_text


def test_single_bigger_file_without_aggregates():
    out = build_output_text({"a.js": {"raw": 500, "gzip": 120}})

    assert out == "\n".join([
        "Files that got Bigger 🚨:",
        "",
        "File | raw | gzip",
        "--- | --- | ---",
        "a.js|+500 B|+120 B",
    ])


def test_buckets_by_raw_delta_sign_in_insertion_order():
    diffs = {
        "z.js": {"raw": 10, "gzip": -1},
        "shrunk.css": {"raw": -2000, "gzip": -300},
        "same.js": {"raw": 0, "gzip": 3},
        "a.js": {"raw": 1, "gzip": 0},
    }

    out = build_output_text(diffs)

    bigger = out.index("Files that got Bigger 🚨:")
    smaller = out.index("Files that got Smaller 🎉:")
    same = out.index("Files that stayed the same size 🤷:")
    assert bigger < smaller < same
    assert out.index("z.js|+10 B|-1 B") < out.index("a.js|+1 B|0 B") < smaller
    assert "shrunk.css|-2 kB|-300 B" in out[smaller:same]
    assert "same.js|0 B|+3 B" in out[same:]


def test_empty_buckets_are_omitted():
    out = build_output_text({"a.css": {"raw": -5, "gzip": -1}})

    assert "Bigger" not in out
    assert "same size" not in out
    assert out.startswith("Files that got Smaller 🎉:")


def test_total_diffs_and_totals_tables():
    totals_diff = {"js": {"raw": 2048, "gzip": 100}, "css": {"raw": -10, "gzip": 0}}
    totals = {"js": {"raw": 150000, "gzip": 40000}, "css": {"raw": 900, "gzip": 300}}

    out = build_output_text({}, totals_diff, totals)

    diff_section = out[out.index("Total Sizes diff 📊:"):out.index("Total Sizes ⛄:")]
    totals_section = out[out.index("Total Sizes ⛄:"):]
    assert "js|+2.05 kB|+100 B" in diff_section
    assert "css|-10 B|0 B" in diff_section
    assert "js|150 kB|40 kB" in totals_section
    assert "css|900 B|300 B" in totals_section
    assert "+" not in totals_section


def test_removed_files_section_uses_base_sizes():
    out = build_output_text({"a.js": {"raw": 0, "gzip": 0}}, removed={"old.js": {"raw": 3000, "gzip": 1200}})

    assert "Files that were removed 🗑️:" in out
    assert "old.js|3 kB|1.2 kB" in out


def test_output_has_no_surrounding_whitespace():
    out = build_output_text(
        {"a.js": {"raw": 1, "gzip": 1}},
        {"js": {"raw": 1, "gzip": 1}, "css": {"raw": 0, "gzip": 0}},
        {"js": {"raw": 1, "gzip": 1}, "css": {"raw": 0, "gzip": 0}},
    )

    assert out == out.strip()
    assert out.endswith("css|0 B|0 B")


def test_nothing_to_report_is_empty():
    assert build_output_text({}) == ""
