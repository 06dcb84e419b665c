#!/usr/bin/env python3
"""
Tests for package name extraction and import scanning
"""

import unittest

from depguard.config import DEFAULT_CONFIG
from depguard.extractor import (
    extract, find_import_references, is_alias_path, is_internal_module, normalize,
    strip_query_and_hash,
)


class TestExtract(unittest.TestCase):
    """Raw import strings to canonical package names"""

    def test_clean_names_are_unchanged(self):
        for name in ['react', 'left-pad', 'lodash.debounce', '@babel/core',
                     '@types/node', 'vue-router', 'd3', 'socket.io-client', 'libs', 'src']:
            self.assertEqual(extract(name), name, f"{name} should be returned as-is")

    def test_version_suffix_is_stripped(self):
        self.assertEqual(extract('pkg@1.2.3'), 'pkg')
        self.assertEqual(extract('react@18.2.0'), 'react')
        self.assertEqual(extract('@scope/pkg@1.2.3'), '@scope/pkg')
        self.assertEqual(extract('@scope/pkg'), '@scope/pkg')

    def test_subpaths_keep_first_segment(self):
        self.assertEqual(extract('lodash/fp'), 'lodash')
        self.assertEqual(extract('libs/my-lib@2.0.0'), 'libs')
        self.assertEqual(extract('@angular/core/testing'), '@angular/core')
        self.assertEqual(extract('rxjs/operators/map'), 'rxjs')

    def test_builtins_are_rejected(self):
        for name in ['fs', 'path', 'http', 'crypto', 'child_process', 'node:fs', 'fs/promises']:
            self.assertIsNone(extract(name), f"{name} is a built-in")

    def test_relative_and_absolute_paths_are_rejected(self):
        for raw in ['./local', '../utils/helpers', '.', '/static/app.js', '/index']:
            self.assertIsNone(extract(raw), f"{raw} is not a package")

    def test_alias_paths_are_rejected(self):
        for raw in ['@/components/Button', '~/store', '~~/plugins/x', '~',
                    'src/main', 'components/Header.vue', 'utils/format',
                    'C:\\project\\node_modules\\x', 'c:/work/app.js', '\\\\server\\share']:
            self.assertIsNone(extract(raw), f"{raw} is an alias path")

    def test_node_modules_prefix_is_stripped(self):
        self.assertEqual(extract('node_modules/react/index.js'), 'react')
        self.assertEqual(extract('../../node_modules/@emotion/react/dist/x.js'), '@emotion/react')
        self.assertEqual(extract('file:node_modules/vue/dist/vue.js'), 'vue')

    def test_query_and_fragment_are_ignored(self):
        self.assertEqual(extract('react?v=3'), 'react')
        self.assertEqual(extract('lodash#fp'), 'lodash')

    def test_scope_without_name_is_rejected(self):
        self.assertIsNone(extract('@scope'))
        self.assertIsNone(extract('@scope/'))

    def test_invalid_input(self):
        for raw in [None, 42, '', '   ', ['react']]:
            self.assertIsNone(extract(raw))

    def test_grammar_violations_are_rejected(self):
        for raw in ['React', 'my package', 'pkg!', '_private', 'UPPER/case']:
            self.assertIsNone(extract(raw), f"{raw} violates the name grammar")

    def test_extraction_is_idempotent(self):
        samples = ['lodash/fp', '@scope/pkg@1.2.3', 'libs/my-lib@2.0.0', 'react@18',
                   'https://unpkg.com/vue@3/dist/vue.js', 'node_modules/chalk/index.js',
                   './local', 'fs', '~@1.0']
        for raw in samples:
            once = extract(raw)
            twice = extract(once) if once is not None else None
            self.assertEqual(once, twice, f"extract is not idempotent for {raw}")


class TestCdnExtraction(unittest.TestCase):
    """Package names recovered from CDN URLs"""

    def test_unpkg(self):
        self.assertEqual(extract('https://unpkg.com/react@18.2.0/index.js'), 'react')
        self.assertEqual(extract('https://unpkg.com/@babel/standalone@7/babel.min.js'), '@babel/standalone')

    def test_jsdelivr(self):
        self.assertEqual(extract('https://cdn.jsdelivr.net/npm/vue@3.4.0/dist/vue.global.js'), 'vue')
        self.assertEqual(extract('//cdn.jsdelivr.net/npm/@popperjs/core@2/dist/umd/popper.min.js'),
                         '@popperjs/core')

    def test_cdnjs(self):
        self.assertEqual(
            extract('https://cdnjs.cloudflare.com/ajax/libs/jquery/3.6.0/jquery.min.js'), 'jquery')
        self.assertEqual(
            extract('https://cdnjs.cloudflare.com/ajax/libs/react/18.2.0/umd/react.production.min.js'),
            'react')

    def test_other_hosts_are_not_packages(self):
        for url in ['https://connect.facebook.net/en_US/sdk.js',
                    'https://www.googletagmanager.com/gtag/js?id=G-1',
                    '//example.com/static/vendor.js',
                    'http://cdn.example.org/react/react.js']:
            self.assertIsNone(extract(url), f"{url} is not a CDN package URL")

    def test_cdn_root_is_not_a_package(self):
        self.assertIsNone(extract('https://unpkg.com/'))
        self.assertIsNone(extract('https://cdnjs.cloudflare.com/ajax/libs/'))


class TestHelpers(unittest.TestCase):

    def test_strip_query_and_hash(self):
        self.assertEqual(strip_query_and_hash('a/b.js?x=1#top'), 'a/b.js')
        self.assertEqual(strip_query_and_hash('plain'), 'plain')

    def test_is_alias_path(self):
        self.assertTrue(is_alias_path('/abs/path'))
        self.assertFalse(is_alias_path('//cdn.example.com/x.js'))
        self.assertTrue(is_alias_path('Pages/Home'))
        self.assertFalse(is_alias_path('pages'))
        self.assertFalse(is_alias_path(''))

    def test_normalize(self):
        self.assertEqual(normalize('@scope/name@^1.0.0'), '@scope/name')
        self.assertEqual(normalize('name@latest'), 'name')
        self.assertIsNone(normalize('@scope'))
        self.assertIsNone(normalize('path'))
        self.assertIsNone(normalize(None))

    def test_custom_builtins(self):
        config = DEFAULT_CONFIG.with_overrides(node_builtins=frozenset(['react']))
        self.assertIsNone(extract('react', config))
        self.assertEqual(extract('fs', config), 'fs')


class TestInternalModules(unittest.TestCase):

    def test_known_submodules(self):
        for name in ['prism-python', 'prism-javascript', 'iron-icon', 'paper-button',
                     'app-layout', 'dom-module', 'yt-formatted-string', 'ytd-app',
                     'ace/mode/python', 'codemirror/mode/javascript']:
            self.assertTrue(is_internal_module(name), f"{name} should be internal")

    def test_regular_packages(self):
        for name in ['prismjs', 'react', 'apple', 'ironclad', 'paper', None, '']:
            self.assertFalse(is_internal_module(name), f"{name} should not be internal")


class TestImportReferences(unittest.TestCase):
    """The regex battery over script bodies"""

    def raws(self, content):
        return [ref.raw for ref in find_import_references(content, 'test')]

    def test_commonjs_and_es_modules(self):
        content = '''
            const pad = require('left-pad');
            import React from "react";
            import { map } from 'lodash/fp';
            const lazy = import('./lazy-chunk');
            export { default } from '@scope/widget';
        '''
        found = self.raws(content)
        for raw in ['left-pad', 'react', 'lodash/fp', './lazy-chunk', '@scope/widget']:
            self.assertIn(raw, found)

    def test_amd_define_captures_every_dependency(self):
        found = self.raws("define(['jquery', 'underscore', 'backbone'], function ($, _, B) {});")
        self.assertEqual(found, ['jquery', 'underscore', 'backbone'])

    def test_named_amd_module(self):
        found = self.raws("define('app', ['moment'], function (m) {});")
        self.assertEqual(found, ['moment'])

    def test_bundler_and_systemjs(self):
        content = '''
            __webpack_require__("axios");
            require.ensure(["chart.js"], function () {});
            System.import('rxjs');
        '''
        found = self.raws(content)
        self.assertIn('axios', found)
        self.assertIn('chart.js', found)
        self.assertIn('rxjs', found)

    def test_source_label_is_kept(self):
        refs = list(find_import_references("require('a')", 'https://site/app.js'))
        self.assertEqual(refs[0].source, 'https://site/app.js')


if __name__ == '__main__':
    unittest.main()
