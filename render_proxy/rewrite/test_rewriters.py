"""
Tests for the HTML, CSS and JS rewriters.

Covers:
- each URL form the rewriters recognise
- references that must be left alone (data URLs, unresolvable ones)
- <base> tag and interceptor script injection
- content type classification
"""

import pytest

from render_proxy.rewrite.rewriters import (
    RewriteContext,
    classify_content_type,
    finalize_html,
    interceptor_script,
    rewrite_content,
    rewrite_css,
    rewrite_html,
    rewrite_js,
)

TARGET = "https://example.com/blog/post.html"
PROXY = "http://proxy.local"
PAGE_BASE = f"{PROXY}/"
ASSET_BASE = f"{PROXY}/asset"


class TestRewriteHtml:
    def test_absolute_url_in_attribute(self):
        html = '<a href="https://other.org/page?a=1">x</a>'
        result = rewrite_html(html, TARGET, PAGE_BASE)
        assert 'href="http://proxy.local/?url=https%3A%2F%2Fother.org%2Fpage%3Fa%3D1"' in result
        assert '"https://other.org/page?a=1"' not in result

    def test_single_quoted_and_unquoted_urls(self):
        html = "<img src='https://cdn.org/a.png'> see https://docs.org/x"
        result = rewrite_html(html, TARGET, PAGE_BASE)
        assert "'http://proxy.local/?url=https%3A%2F%2Fcdn.org%2Fa.png'" in result
        assert " http://proxy.local/?url=https%3A%2F%2Fdocs.org%2Fx" in result

    def test_protocol_relative_url(self):
        html = '<script src="//cdn.org/lib.js"></script>'
        result = rewrite_html(html, TARGET, PAGE_BASE)
        assert 'src="http://proxy.local/?url=https%3A%2F%2Fcdn.org%2Flib.js"' in result

    def test_root_relative_url(self):
        html = '<link href="/static/site.css">'
        result = rewrite_html(html, TARGET, PAGE_BASE)
        assert 'href="http://proxy.local/?url=https%3A%2F%2Fexample.com%2Fstatic%2Fsite.css"' in result

    def test_root_relative_stops_at_tag_end(self):
        result = rewrite_html("<a href= /x>go</a>", TARGET, PAGE_BASE)
        assert result == "<a href= http://proxy.local/?url=https%3A%2F%2Fexample.com%2Fx>go</a>"

    def test_closing_tags_untouched(self):
        html = "<p>text</p><br />"
        assert rewrite_html(html, TARGET, PAGE_BASE) == html

    def test_plain_text_resembling_path_is_rewritten(self):
        # Known limitation of the non-parsing rewriter
        result = rewrite_html("<p>run /usr/bin/env</p>", TARGET, PAGE_BASE)
        assert "?url=https%3A%2F%2Fexample.com%2Fusr%2Fbin%2Fenv" in result

    def test_each_url_rewritten_once(self):
        html = '<a href="https://a.org/">1</a><a href="/b">2</a>'
        result = rewrite_html(html, TARGET, PAGE_BASE)
        assert result.count("?url=") == 2
        assert "%253A" not in result

    def test_unresolvable_reference_left_alone(self):
        html = '<a href="//[bad">x</a>'
        assert rewrite_html(html, TARGET, PAGE_BASE) == html

    def test_empty_payload(self):
        assert rewrite_html("", TARGET, PAGE_BASE) == ""

    def test_no_matches_unchanged(self):
        html = "<html><body><p>hello</p></body></html>"
        assert rewrite_html(html, TARGET, PAGE_BASE) == html


class TestFinalizeHtml:
    def test_injects_base_after_head(self):
        result = finalize_html("<html><head></head></html>", TARGET, PROXY)
        assert result.startswith(
            '<html><head><base href="http://proxy.local/?url=https%3A%2F%2Fexample.com%2Fblog%2Fpost.html">'
        )

    def test_head_with_attributes(self):
        result = finalize_html('<head lang="en"><title>t</title></head>', TARGET, PROXY)
        assert result.startswith('<head lang="en"><base href=')

    def test_existing_base_tag_kept(self):
        html = '<head><base href="http://proxy.local/?url=x"></head>'
        result = finalize_html(html, TARGET, PROXY)
        assert result.count("<base") == 1

    def test_interceptor_before_head_close(self):
        result = finalize_html("<head></head><body></body>", TARGET, PROXY)
        script_at = result.index("<script>")
        assert script_at < result.index("</head>")
        assert "window.fetch" in result
        assert "XMLHttpRequest.prototype.open" in result

    def test_interceptor_targets_page_endpoint(self):
        script = interceptor_script(PROXY)
        assert '"http://proxy.local/?url="' in script

    def test_no_head_no_injection(self):
        assert finalize_html("<p>fragment</p>", TARGET, PROXY) == "<p>fragment</p>"


class TestRewriteCss:
    def test_data_url_untouched(self):
        css = "body { background: url(data:image/png;base64,iVBORw0KGgo=); }"
        assert rewrite_css(css, TARGET, ASSET_BASE) == css

    def test_quoted_data_url_untouched(self):
        css = "a { background: url('data:image/svg+xml;utf8,<svg></svg>'); }"
        assert rewrite_css(css, TARGET, ASSET_BASE) == css

    @pytest.mark.parametrize(
        "reference,absolute",
        [
            ("https://cdn.org/f.woff", "https%3A%2F%2Fcdn.org%2Ff.woff"),
            ("//cdn.org/f.woff", "https%3A%2F%2Fcdn.org%2Ff.woff"),
            ("/img/bg.png", "https%3A%2F%2Fexample.com%2Fimg%2Fbg.png"),
            ("img/bg.png", "https%3A%2F%2Fexample.com%2Fblog%2Fimg%2Fbg.png"),
            ("../bg.png", "https%3A%2F%2Fexample.com%2Fbg.png"),
        ],
    )
    def test_reference_forms(self, reference, absolute):
        css = f".x {{ background: url('{reference}'); }}"
        result = rewrite_css(css, TARGET, ASSET_BASE)
        assert result == f'.x {{ background: url("http://proxy.local/asset?url={absolute}"); }}'

    def test_uppercase_url_function(self):
        result = rewrite_css("a{b:URL(/x.png)}", TARGET, ASSET_BASE)
        assert 'url("http://proxy.local/asset?url=https%3A%2F%2Fexample.com%2Fx.png")' in result

    def test_unresolvable_reference_left_alone(self):
        css = "a { behavior: url(javascript:alert(1)); }"
        assert rewrite_css(css, TARGET, ASSET_BASE) == css

    def test_only_url_notation(self):
        css = '@import "/other.css"; a { color: red; }'
        assert rewrite_css(css, TARGET, ASSET_BASE) == css


class TestRewriteJs:
    def test_quoted_absolute_literal(self):
        js = 'fetch("https://api.org/v1/items");'
        result = rewrite_js(js, TARGET, ASSET_BASE)
        assert result == 'fetch("http://proxy.local/asset?url=https%3A%2F%2Fapi.org%2Fv1%2Fitems");'

    def test_protocol_relative_literal(self):
        js = "var s = '//cdn.org/x.js';"
        result = rewrite_js(js, TARGET, ASSET_BASE)
        assert result == "var s = 'http://proxy.local/asset?url=https%3A%2F%2Fcdn.org%2Fx.js';"

    def test_root_relative_literal_not_rewritten(self):
        js = 'var path = "/api/items";'
        assert rewrite_js(js, TARGET, ASSET_BASE) == js

    def test_unquoted_url_not_rewritten(self):
        js = "// see https://example.com/docs\nvar a = 1;"
        assert rewrite_js(js, TARGET, ASSET_BASE) == js

    def test_unresolvable_literal_left_alone(self):
        js = 'var u = "https://[x";'
        assert rewrite_js(js, TARGET, ASSET_BASE) == js

    def test_empty_payload(self):
        assert rewrite_js("", TARGET, ASSET_BASE) == ""


class TestClassification:
    @pytest.mark.parametrize(
        "content_type,category",
        [
            ("text/html; charset=utf-8", "html"),
            ("application/xhtml+xml", "html"),
            ("text/css", "css"),
            ("application/javascript", "javascript"),
            ("text/javascript; charset=utf-8", "javascript"),
            ("image/png", "binary"),
            ("Video/mp4", "binary"),
            ("audio/ogg", "binary"),
            ("application/pdf", "binary"),
            ("text/plain", "text"),
            ("application/json", "text"),
            ("", "text"),
        ],
    )
    def test_classify_content_type(self, content_type, category):
        assert classify_content_type(content_type) == category


class TestRewriteContent:
    def test_context_bases(self):
        context = RewriteContext.build(TARGET, PROXY)
        assert context.target_origin == "https://example.com"
        assert context.proxy_base == "http://proxy.local/"
        assert context.asset_base == "http://proxy.local/asset"

    def test_css_goes_through_asset_endpoint(self):
        result = rewrite_content("a{b:url(/x.png)}", "text/css", TARGET, PROXY)
        assert "http://proxy.local/asset?url=" in result

    def test_html_gets_base_and_script(self):
        result = rewrite_content(
            '<head></head><a href="/x">', "text/html", "https://example.com/", PROXY
        )
        assert '<base href="http://proxy.local/?url=https%3A%2F%2Fexample.com%2F">' in result
        assert 'href="http://proxy.local/?url=https%3A%2F%2Fexample.com%2Fx"' in result
        assert "<script>" in result

    def test_other_text_unchanged(self):
        body = '{"next": "https://example.com/page/2"}'
        assert rewrite_content(body, "application/json", TARGET, PROXY) == body
