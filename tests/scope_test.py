"""
URL normalization and site scope.
"""

import unittest

from sitecrawler.errors import InvalidUrl, UnsupportedScheme
from sitecrawler.scope import CrawlScope, Origin, canonicalize_seed, in_scope, normalize


class TestNormalize(unittest.TestCase):
    def test_case_and_trailing_slash(self):
        self.assertEqual(normalize("https://A.com/x/"), normalize("https://a.com/x"))
        self.assertEqual(normalize("https://A.com/x/").url, "https://a.com/x")

    def test_full_cleanup(self):
        target = normalize("HTTP://Example.COM:80//a//b/./c/../d/?q=1#frag")
        self.assertEqual(target.url, "http://example.com/a/b/d?q=1")
        self.assertEqual(target.origin, Origin("http", "example.com", 80))

    def test_idempotent(self):
        samples = [
            "https://a.com",
            "https://a.com/",
            "https://a.com:8443/x/y/?b=2&a=1",
            "http://a.com/%7Euser/",
            "https://www.a.com/../..//z#top",
        ]
        for raw in samples:
            with self.subTest(raw=raw):
                once = normalize(raw)
                self.assertEqual(normalize(once.url), once)
                self.assertEqual(normalize(once.url).url, once.url)

    def test_relative_resolution(self):
        self.assertEqual(normalize("../c", base="https://a.com/x/y/z").url, "https://a.com/x/c")
        self.assertEqual(normalize("/root", base="https://a.com/x/").url, "https://a.com/root")
        self.assertEqual(normalize("//b.com/p", base="https://a.com/").url, "https://b.com/p")

    def test_query_kept_fragment_dropped(self):
        self.assertEqual(normalize("https://a.com/p?x=1&y=2#s").url, "https://a.com/p?x=1&y=2")

    def test_non_default_port_kept(self):
        target = normalize("https://a.com:8443/p")
        self.assertEqual(target.url, "https://a.com:8443/p")
        self.assertEqual(str(target.origin), "https://a.com:8443")
        self.assertEqual(target.origin.robots_url, "https://a.com:8443/robots.txt")

    def test_unsupported_schemes(self):
        for raw in ("mailto:someone@a.com", "javascript:void(0)", "tel:+123", "ftp://a.com/f"):
            with self.subTest(raw=raw):
                with self.assertRaises(UnsupportedScheme):
                    normalize(raw, base="https://a.com/")

    def test_invalid(self):
        for raw in ("http://[::1", "http://a.com:99999/", "http:///path", "", "   "):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidUrl):
                    normalize(raw)

    def test_relative_without_base(self):
        with self.assertRaises(InvalidUrl):
            normalize("/just/a/path")

    def test_equality_ignores_origin_object(self):
        a = normalize("https://a.com/p")
        b = normalize("https://a.com:443/p")
        self.assertEqual(a, b)
        self.assertEqual(len({a, b}), 1)

    def test_path_includes_query(self):
        self.assertEqual(normalize("https://a.com/s?q=1").path, "/s?q=1")
        self.assertEqual(normalize("https://a.com").path, "/")

    def test_canonicalize_seed(self):
        self.assertEqual(canonicalize_seed("example.com/docs"), "https://example.com/docs")
        self.assertEqual(canonicalize_seed("  http://example.com "), "http://example.com")


class TestScope(unittest.TestCase):
    def test_same_host_only(self):
        scope = CrawlScope(normalize("https://a.example.com/"))
        self.assertTrue(scope.in_scope(normalize("https://a.example.com/deep/page")))
        self.assertFalse(scope.in_scope(normalize("https://b.example.com/")))
        self.assertFalse(scope.in_scope(normalize("https://community.a.example.com/")))
        self.assertFalse(scope.in_scope(normalize("https://example.com/")))

    def test_www_alias(self):
        naked = CrawlScope(normalize("https://example.com/"))
        self.assertTrue(naked.in_scope(normalize("https://www.example.com/x")))
        self.assertFalse(naked.in_scope(normalize("https://blog.example.com/x")))

        www = CrawlScope(normalize("https://www.example.co.uk/"))
        self.assertTrue(www.in_scope(normalize("https://example.co.uk/")))
        self.assertFalse(www.in_scope(normalize("https://shop.example.co.uk/")))

    def test_scheme_and_port_do_not_matter(self):
        scope = CrawlScope(normalize("https://example.com/"))
        self.assertTrue(scope.in_scope(normalize("http://example.com/a")))
        self.assertTrue(scope.in_scope(normalize("https://example.com:8443/a")))

    def test_other_domains(self):
        seed = normalize("https://example.com/")
        self.assertFalse(in_scope(normalize("https://example.org/"), seed.origin))
        self.assertFalse(in_scope(normalize("https://notexample.com/"), seed.origin))
        self.assertTrue(in_scope(normalize("https://EXAMPLE.com/x"), seed.origin))

    def test_hosts_without_public_suffix(self):
        scope = CrawlScope(normalize("http://localhost:8000/"))
        self.assertTrue(scope.in_scope(normalize("http://localhost:9000/x")))
        self.assertFalse(scope.in_scope(normalize("http://www.localhost/")))


if __name__ == "__main__":
    unittest.main()
