"""Tests for the compressor module."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from markup_compressor import (
    AllocationExhausted,
    CompressionResult,
    ConfigurationError,
    ContentKind,
    HtmlCompressor,
    HtmlConfiguration,
    PipelineState,
    UnresolvedPlaceholder,
    XmlCompressor,
    XmlConfiguration,
    compress,
    compress_with_stats,
)
from markup_compressor.placeholders import TOKEN_PREFIX

PAGE = """<!DOCTYPE html>
<html>
  <head>
    <title>  Page   title  </title>
    <!--[if IE]><link rel="stylesheet" href="ie.css"><![endif]-->
    <style>
      body { color : red; }
    </style>
    <script>
      var  a = "<b>  x  </b>";
    </script>
  </head>
  <body>
    <!-- a comment -->
    <pre>  keep
      this   </pre>
    <textarea>  and
   this  </textarea>
    <p class="x"   onclick="go( 1,  2 )">  Hello   world  </p>
  </body>
</html>
"""


class Recorder:
    """Compressor double that records its input."""

    def __init__(self, output=None):
        self.calls = []
        self.output = output

    def compress(self, source):
        self.calls.append(source)
        return source.strip() if self.output is None else self.output


class TestCompress:
    def test_returns_string(self):
        assert isinstance(compress("<p>Hello</p>"), str)

    def test_output_shorter_than_input(self):
        assert len(compress(PAGE)) < len(PAGE)

    def test_empty_string(self):
        assert compress("") == ""

    def test_collapses_multi_spaces(self):
        assert compress("a    b", HtmlConfiguration.minimal(remove_multi_spaces=True)) == "a b"

    def test_comment_removal_with_intertag_spaces(self):
        config = HtmlConfiguration(remove_comments=True, remove_intertag_spaces=True)
        assert compress("<p>x</p><!-- note --><p>y</p>", config) == "<p>x</p><p>y</p>"

    def test_default_keeps_intertag_space(self):
        assert compress("<div>\n  <p>a</p>\n</div>") == "<div> <p>a</p> </div>"

    def test_remove_intertag_spaces(self):
        config = HtmlConfiguration(remove_intertag_spaces=True)
        assert compress("<div>\n  <p>a</p>\n</div>", config) == "<div><p>a</p></div>"

    def test_trims_document(self):
        assert compress("  \n<p>a</p>\n\n") == "<p>a</p>"

    def test_default_configuration_when_none(self):
        assert compress("<p>  a  </p>", None) == "<p> a </p>"

    def test_unknown_configuration_type(self):
        with pytest.raises(ConfigurationError, match="Expected HtmlConfiguration or XmlConfiguration"):
            compress("<p>a</p>", object())  # type: ignore[arg-type]


class TestDisabled:
    def test_disabled_returns_input(self):
        config = HtmlConfiguration().with_enabled(False)
        assert compress(PAGE, config) == PAGE

    def test_disabled_records_only_disabled_state(self):
        result = compress_with_stats(PAGE, HtmlConfiguration(enabled=False))
        assert result.states == (PipelineState.DISABLED,)
        assert result.segments == ()

    def test_disabled_xml(self):
        xml = "<a>\n  <b/>\n</a>"
        assert compress(xml, XmlConfiguration().with_enabled(False)) == xml


class TestNoOpConfiguration:
    @pytest.mark.parametrize("document", [
        "<html>\n  <body>\n    <p class=\"a\"   id='b'>  Hello   world  </p>\n  </body>\n</html>\n",
        "  leading and trailing  \n",
        PAGE,
        "<p onclick='javascript:  go()'>x</p>  <br />  <input value = \"a\" >",
    ])
    def test_minimal_is_identity(self, document: str):
        assert compress(document, HtmlConfiguration.minimal()) == document


class TestPreservedRegions:
    def test_pre_kept_verbatim(self):
        html = "<div>   <pre>  a   b  </pre>   </div>"
        assert compress(html) == "<div> <pre>  a   b  </pre> </div>"

    def test_pre_with_attributes(self):
        html = '<pre class="code">\n  x  =  1\n</pre>'
        assert compress(html) == html

    def test_textarea_kept_verbatim(self):
        html = "<form>  <textarea name=\"t\">  line 1\n\n  line 2 </textarea>  </form>"
        assert compress(html) == "<form> <textarea name=\"t\">  line 1\n\n  line 2 </textarea> </form>"

    def test_script_body_kept_without_compression(self):
        html = "<script>\n  var  a = 1;\n</script>\n<p>  x  </p>"
        assert compress(html) == "<script>\n  var  a = 1;\n</script> <p> x </p>"

    def test_style_body_kept_without_compression(self):
        html = "<style>\n  a  {  color: red }\n</style>"
        assert compress(html) == html

    def test_event_handler_kept(self):
        html = '<a href="#"  onclick="go( 1,  2 )">x</a>'
        assert compress(html) == '<a href="#" onclick="go( 1,  2 )">x</a>'

    def test_cdata_kept(self):
        html = "<svg>  <![CDATA[  a   b  ]]>  </svg>"
        assert compress(html) == "<svg> <![CDATA[  a   b  ]]> </svg>"

    def test_comment_kept_when_not_removed(self):
        html = "<p>a</p>  <!--  note  -->  <p>b</p>"
        assert compress(html, HtmlConfiguration(remove_comments=False)) == "<p>a</p> <!--  note  --> <p>b</p>"

    def test_conditional_comment_inner_markup_compressed(self):
        html = "<!--[if IE]>\n  <p>  x  </p>\n<![endif]-->"
        assert compress(html) == "<!--[if IE]><p> x </p><![endif]-->"

    def test_conditional_comment_survives_comment_removal(self):
        html = "<!-- gone --><!--[if lt IE 9]><script src=\"a.js\"></script><![endif]-->"
        assert compress(html) == "<!--[if lt IE 9]><script src=\"a.js\"></script><![endif]-->"

    def test_skip_block_markers_dropped(self):
        html = "<!-- {{{ -->  keep   this  <!-- }}} --><p>  a  </p>"
        assert compress(html) == "  keep   this  <p> a </p>"

    def test_non_javascript_script_kept(self):
        html = '<script type="text/template">\n  <p>  a  </p>\n</script>'
        assert compress(html) == html

    def test_jquery_template_is_minified_as_markup(self):
        html = '<script type="text/x-jquery-tmpl">\n  <p>  a  </p>\n</script>'
        assert compress(html) == '<script type="text/x-jquery-tmpl"> <p> a </p> </script>'

    def test_regions_restored_byte_for_byte(self):
        config = HtmlConfiguration(
            remove_intertag_spaces=True,
            remove_quotes=True,
            remove_surrounding_spaces="all",
            simple_boolean_attributes=True,
        )
        result = compress(PAGE, config)
        for region in (
            "  keep\n      this   ",
            "  and\n   this  ",
            '\n      var  a = "<b>  x  </b>";\n    ',
            "\n      body { color : red; }\n    ",
            "go( 1,  2 )",
        ):
            assert region in result


class TestTemplateTags:
    def test_php_kept(self):
        html = "<p>  <?php echo  $a; ?>  </p>"
        config = HtmlConfiguration(preserve_php=True)
        assert compress(html, config) == "<p> <?php echo  $a; ?> </p>"

    def test_php_to_end_of_file(self):
        html = "<div>  a  </div>\n<?php echo 1;\n  $x  =  2;\n"
        result = compress(html, HtmlConfiguration(preserve_php=True))
        assert result.endswith("<?php echo 1;\n  $x  =  2;\n")
        assert result.startswith("<div> a </div>")

    def test_php_document_ending_without_closing_tag(self):
        html = "<p>a</p>   <?php echo 1;"
        assert compress(html, HtmlConfiguration(preserve_php=True)) == "<p>a</p> <?php echo 1;"

    def test_server_script_kept(self):
        html = "<p>  <%  out.print( 1 );  %>  </p>"
        assert compress(html, HtmlConfiguration(preserve_server_script=True)) == "<p> <%  out.print( 1 );  %> </p>"

    def test_ssi_kept_when_enabled(self):
        html = '<p>a</p>\n<!--#include virtual="/footer.html" -->'
        assert compress(html, HtmlConfiguration(preserve_ssi=True)) == '<p>a</p> <!--#include virtual="/footer.html" -->'

    def test_ssi_removed_as_comment_when_disabled(self):
        html = '<p>a</p><!--#include virtual="/footer.html" -->'
        assert compress(html) == "<p>a</p>"

    def test_php_inside_pre(self):
        html = "<pre> <?php echo  1; ?>   x </pre>"
        assert compress(html, HtmlConfiguration(preserve_php=True)) == html

    def test_php_inside_removed_comment_is_dropped(self):
        html = "<!-- <?php echo 1; ?> --><p>x</p>"
        assert compress(html, HtmlConfiguration(preserve_php=True)) == "<p>x</p>"


class TestCustomPreservePatterns:
    def test_custom_pattern_kept(self):
        config = HtmlConfiguration(preserve_patterns=[r"\{\{.*?\}\}"])
        assert compress("<p>{{  name  }}</p>   <p>x</p>", config) == "<p>{{  name  }}</p> <p>x</p>"

    def test_single_string_pattern(self):
        config = HtmlConfiguration(preserve_patterns=r"\[\[.*?\]\]")
        assert compress("<b>[[ a   b ]]</b>  c", config) == "<b>[[ a   b ]]</b> c"

    def test_invalid_pattern_raises_before_compression(self):
        with pytest.raises(ConfigurationError, match="Invalid regex pattern"):
            HtmlConfiguration(preserve_patterns=["(unclosed"])

    def test_builtin_rule_wins_over_overlapping_custom_pattern(self):
        config = HtmlConfiguration(preserve_php=True, preserve_patterns=[r"<\?php.*?\?>"])
        result = compress_with_stats("<p><?php echo  1; ?></p>", config)
        kinds = [segment.kind for segment in result.segments]
        assert ContentKind.PHP_TAG in kinds
        assert ContentKind.CUSTOM not in kinds
        assert result.text == "<p><?php echo  1; ?></p>"

    def test_custom_pattern_cannot_split_builtin_region(self):
        config = HtmlConfiguration(preserve_php=True, preserve_patterns=[r"echo.*?;"])
        result = compress_with_stats("<?php echo  1; ?>  echo   2;", config)
        php = next(s for s in result.segments if s.kind is ContentKind.PHP_TAG)
        custom = next(s for s in result.segments if s.kind is ContentKind.CUSTOM)
        assert php.text == "<?php echo  1; ?>"
        assert custom.text == "echo   2;"

    def test_custom_patterns_applied_in_order(self):
        config = HtmlConfiguration(preserve_patterns=[r"b+", r"a+b*"])
        result = compress_with_stats("aabb", config)
        assert [s.text for s in result.segments] == ["bb", "aa"]

    @pytest.mark.parametrize("pattern", [r"\d+", r"[0-9a-f]+", r"\w+"])
    def test_custom_pattern_cannot_split_earlier_token(self, pattern):
        html = "<!--[if IE]><p>x</p><![endif]-->  <p>2024</p>"
        result = compress_with_stats(html, HtmlConfiguration(preserve_patterns=[pattern]))
        assert result.text == "<!--[if IE]><p>x</p><![endif]--> <p>2024</p>"
        assert all(TOKEN_PREFIX not in s.text for s in result.segments)


class TestSurroundingSpaces:
    def test_named_tag_only(self):
        html = "<div> a </div><p> x </p><span> y </span>"
        config = HtmlConfiguration(remove_surrounding_spaces="p")
        assert compress(html, config) == "<div> a </div><p>x</p><span> y </span>"

    def test_does_not_touch_similar_tag_names(self):
        html = "<p> a </p> <pre> b </pre> <param name=x> c"
        config = HtmlConfiguration(remove_surrounding_spaces="p")
        assert compress(html, config) == "<p>a</p><pre> b </pre> <param name=x> c"

    def test_min_set(self):
        html = "<body> <p> a </p> <span> b </span> </body>"
        config = HtmlConfiguration(remove_surrounding_spaces="min")
        assert compress(html, config) == "<body><p>a</p><span> b </span></body>"

    def test_all_tags(self):
        html = "<div> <span> a </span> </div>"
        config = HtmlConfiguration(remove_surrounding_spaces="all")
        assert compress(html, config) == "<div><span>a</span></div>"


class TestAttributePasses:
    def test_remove_spaces_inside_tags(self):
        assert compress('<p  class = "a"  >x</p>') == '<p class="a">x</p>'

    def test_self_closing_after_unquoted_value_keeps_space(self):
        assert compress("<input value=foo />") == "<input value=foo />"

    def test_self_closing_tag(self):
        assert compress("<br />") == "<br/>"

    def test_remove_quotes(self):
        html = "<div class=\"a\"  id='b-1' title=\"x y\"></div>"
        config = HtmlConfiguration(remove_quotes=True)
        assert compress(html, config) == '<div class=a id=b-1 title="x y"></div>'

    def test_remove_quotes_before_self_close(self):
        config = HtmlConfiguration(remove_quotes=True)
        assert compress('<input value="foo"/>', config) == "<input value=foo />"

    def test_simple_doctype(self):
        html = ('<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" '
                '"http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">\n<html></html>')
        assert compress(html, HtmlConfiguration(simple_doctype=True)) == "<!DOCTYPE html> <html></html>"

    def test_remove_script_attributes(self):
        html = '<script type="text/javascript" language="javascript">go()</script>'
        config = HtmlConfiguration(remove_script_attributes=True)
        assert compress(html, config) == "<script>go()</script>"

    def test_script_attributes_of_other_types_kept(self):
        html = '<script type="text/x-template">go()</script>'
        assert compress(html, HtmlConfiguration(remove_script_attributes=True)) == html

    def test_remove_style_attributes(self):
        config = HtmlConfiguration(remove_style_attributes=True)
        assert compress('<style type="text/css">a{}</style>', config) == "<style>a{}</style>"

    def test_remove_link_attributes(self):
        config = HtmlConfiguration(remove_link_attributes=True)
        html = '<link rel="stylesheet" type="text/css" href="a.css">'
        assert compress(html, config) == '<link rel="stylesheet" href="a.css">'

    def test_link_attributes_kept_for_non_stylesheets(self):
        html = '<link rel="alternate" type="text/plain" href="a.txt">'
        assert compress(html, HtmlConfiguration(remove_link_attributes=True)) == html

    def test_remove_form_attributes(self):
        config = HtmlConfiguration(remove_form_attributes=True)
        assert compress('<form method="get" action="/s"></form>', config) == '<form action="/s"></form>'
        assert compress('<form method="post"></form>', config) == '<form method="post"></form>'

    def test_remove_input_attributes(self):
        config = HtmlConfiguration(remove_input_attributes=True)
        assert compress('<input type="text" name="q">', config) == '<input name="q">'
        assert compress('<input type="checkbox">', config) == '<input type="checkbox">'

    def test_input_attribute_prefixed_name_kept(self):
        html = '<input data-type="text" name="q">'
        assert compress(html, HtmlConfiguration(remove_input_attributes=True)) == html

    def test_simple_boolean_attributes(self):
        html = '<input type="checkbox" checked="checked" disabled="disabled"><option selected=\'selected\'>'
        config = HtmlConfiguration(simple_boolean_attributes=True)
        assert compress(html, config) == '<input type="checkbox" checked disabled><option selected>'

    def test_remove_http_protocol(self):
        html = '<a href="http://example.com/">http://example.com/</a><img src=\'http://x/a.png\'>'
        config = HtmlConfiguration(remove_http_protocol=True)
        assert compress(html, config) == '<a href="//example.com/">http://example.com/</a><img src=\'//x/a.png\'>'

    def test_http_protocol_kept_for_external_links(self):
        html = '<a href="http://example.com/" rel="external">x</a>'
        assert compress(html, HtmlConfiguration(remove_http_protocol=True)) == html

    def test_remove_https_protocol(self):
        html = '<form action="https://example.com/s"></form>'
        config = HtmlConfiguration(remove_https_protocol=True)
        assert compress(html, config) == '<form action="//example.com/s"></form>'

    def test_remove_javascript_protocol_from_event_handlers(self):
        html = '<a href="javascript:void(0)" onclick="javascript:  go()">x</a>'
        config = HtmlConfiguration(remove_javascript_protocol=True)
        assert compress(html, config) == '<a href="javascript:void(0)" onclick="go()">x</a>'


class TestLineBreaks:
    def test_preserve_line_breaks(self):
        html = "<p>a</p>\n\n   <p>b</p>   c  \n d"
        config = HtmlConfiguration(preserve_line_breaks=True)
        assert compress(html, config) == "<p>a</p>\n<p>b</p> c\nd"

    def test_line_breaks_with_intertag_spaces(self):
        html = "<div>\n  <p>a</p>\n</div>"
        config = HtmlConfiguration(preserve_line_breaks=True, remove_intertag_spaces=True)
        assert compress(html, config) == "<div>\n<p>a</p>\n</div>"


class TestEmbeddedCompression:
    def test_javascript_compressed(self):
        html = "<script>\n  var  a = 1;\n  // note\n  var b = 2;\n</script>"
        result = compress(html, HtmlConfiguration(compress_javascript=True))
        assert "var a=1;" in result
        assert "// note" not in result
        assert result.startswith("<script>") and result.endswith("</script>")

    def test_css_compressed(self):
        html = "<style>\n  body  {  color : red ; }\n</style>"
        result = compress(html, HtmlConfiguration(compress_css=True))
        assert "body{color:red" in result

    def test_commented_cdata_wrapper_restored(self):
        html = "<script>/*<![CDATA[*/\n  var  a = 1;\n/*]]>*/</script>"
        result = compress(html, HtmlConfiguration(compress_javascript=True))
        assert result == "<script>/*<![CDATA[*/var a=1;/*]]>*/</script>"

    def test_cdata_wrapper_kept_without_compression(self):
        html = "<script>/*<![CDATA[*/\n  var  a = 1;\n/*]]>*/</script>"
        assert compress(html) == html

    def test_injected_compressor(self):
        recorder = Recorder()
        compressor = HtmlCompressor(HtmlConfiguration(compress_javascript=True), js_compressor=recorder)
        assert compressor.compress("<script>\n  go();\n</script>") == "<script>go();</script>"
        assert recorder.calls == ["\n  go();\n"]

    def test_flag_off_never_calls_backend(self):
        recorder = Recorder()
        HtmlCompressor(HtmlConfiguration(), js_compressor=recorder, css_compressor=recorder).compress(PAGE)
        assert recorder.calls == []

    def test_preserved_block_inside_script_survives(self):
        recorder = Recorder()
        config = HtmlConfiguration(preserve_php=True, compress_javascript=True)
        html = '<script>\n  var a = "<?php echo 1; ?>";\n</script>'
        result = HtmlCompressor(config, js_compressor=recorder).compress(html)
        assert result == '<script>var a = "<?php echo 1; ?>";</script>'
        assert TOKEN_PREFIX in recorder.calls[0]

    def test_script_with_preserved_block_skipped_when_asked(self):
        recorder = Recorder()
        config = HtmlConfiguration(
            preserve_php=True, compress_javascript=True, compress_js_with_preserved_blocks=False
        )
        html = '<script>\n  var a = "<?php echo 1; ?>";\n</script>'
        assert HtmlCompressor(config, js_compressor=recorder).compress(html) == html
        assert recorder.calls == []

    def test_style_with_preserved_block_skipped_when_asked(self):
        recorder = Recorder()
        config = HtmlConfiguration(
            preserve_patterns=[r"\$\{.*?\}"], compress_css=True, compress_css_with_preserved_blocks=False
        )
        html = "<style>\n  a { color: ${color}; }\n</style>"
        assert HtmlCompressor(config, css_compressor=recorder).compress(html) == html

    def test_dropped_placeholder_is_fatal(self):
        config = HtmlConfiguration(preserve_php=True, compress_javascript=True)
        compressor = HtmlCompressor(config, js_compressor=Recorder(output="var a;"))
        with pytest.raises(UnresolvedPlaceholder, match="dropped placeholder"):
            compressor.compress('<script>var a = "<?php echo 1; ?>";</script>')

    def test_states_include_embedded_stage(self):
        result = compress_with_stats("<style>a { }</style>", HtmlConfiguration(compress_css=True))
        assert result.states == (
            PipelineState.EXTRACTING,
            PipelineState.MINIFYING,
            PipelineState.COMPRESSING_EMBEDDED,
            PipelineState.RESTORING,
            PipelineState.DONE,
        )


class TestCompressionStats:
    def test_returns_compression_result(self):
        assert isinstance(compress_with_stats("<p>a</p>"), CompressionResult)

    def test_text_matches_compress(self):
        assert compress_with_stats(PAGE).text == compress(PAGE)

    def test_lengths_and_ratio(self):
        result = compress_with_stats("<p>  a  </p>")
        assert result.original_length == 12
        assert result.compressed_length == len("<p> a </p>")
        assert result.ratio == pytest.approx(10 / 12)
        assert result.savings_pct == pytest.approx((1 - 10 / 12) * 100)

    def test_empty_input(self):
        result = compress_with_stats("")
        assert result.ratio == 1.0
        assert result.states == (PipelineState.DISABLED,)

    def test_str_returns_text(self):
        result = compress_with_stats("<p>  a  </p>")
        assert str(result) == result.text

    def test_states_without_embedded_stage(self):
        assert compress_with_stats("<p>a</p>").states == (
            PipelineState.EXTRACTING,
            PipelineState.MINIFYING,
            PipelineState.RESTORING,
            PipelineState.DONE,
        )

    def test_segments_in_extraction_order(self):
        result = compress_with_stats("<pre>a</pre><textarea>b</textarea><pre>c</pre>")
        assert [(s.kind, s.text) for s in result.segments] == [
            (ContentKind.PRE, "a"),
            (ContentKind.PRE, "c"),
            (ContentKind.TEXTAREA, "b"),
        ]
        assert [s.order for s in result.segments] == [0, 1, 2]

    def test_no_placeholder_leaks(self):
        result = compress_with_stats(PAGE, HtmlConfiguration(remove_intertag_spaces=True, remove_quotes=True))
        assert result.segments
        assert TOKEN_PREFIX not in result.text
        for segment in result.segments:
            assert segment.token not in result.text

    def test_segment_limit(self):
        with pytest.raises(AllocationExhausted):
            compress("<pre>a</pre><pre>b</pre>", HtmlConfiguration(max_segments=1))


class TestPlaceholderSafety:
    def test_token_shaped_input_untouched(self):
        html = "<p>%%%~deadbeef~PRE~0~%%%</p>"
        assert compress(html) == html

    def test_token_shaped_input_next_to_real_segment(self):
        html = "<pre> a </pre>   %%%~00000000~PRE~0~%%%"
        assert compress(html) == "<pre> a </pre> %%%~00000000~PRE~0~%%%"


class TestXmlCompressor:
    XML = (
        '<?xml version="1.0"?>\n<root>\n  <!-- c -->\n  <a>  x  </a>\n'
        "  <b><![CDATA[  <keep>   </keep> ]]></b>\n</root>\n"
    )

    def test_default(self):
        assert compress(self.XML, XmlConfiguration()) == (
            '<?xml version="1.0"?><root><a>  x  </a><b><![CDATA[  <keep>   </keep> ]]></b></root>'
        )

    def test_comments_kept(self):
        result = XmlCompressor(XmlConfiguration(remove_comments=False)).compress(self.XML)
        assert "<root><!-- c --><a>" in result

    def test_minimal_is_identity(self):
        assert compress(self.XML, XmlConfiguration.minimal()) == self.XML

    def test_stats(self):
        result = compress_with_stats(self.XML, XmlConfiguration())
        assert [s.kind for s in result.segments] == [ContentKind.CDATA]
        assert result.states[-1] is PipelineState.DONE


class TestConcurrency:
    def test_shared_compressor_across_threads(self):
        compressor = HtmlCompressor(HtmlConfiguration(remove_intertag_spaces=True))
        documents = [PAGE.replace("Hello", f"Hello {i}") for i in range(40)]
        expected = [compressor.compress(d) for d in documents]
        with ThreadPoolExecutor(max_workers=8) as pool:
            assert list(pool.map(compressor.compress, documents)) == expected
