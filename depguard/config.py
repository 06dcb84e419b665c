"""
Scanner configuration

A single immutable ScannerConfig value holds every threshold, pattern table
and path list the scanner uses. Build it once and pass it to each component.
"""

import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Optional, Pattern, Tuple


USER_AGENT = 'depguard/1.0 (npm dependency confusion auditor)'

NODE_BUILTINS = frozenset([
    'assert', 'buffer', 'child_process', 'cluster', 'crypto', 'dgram', 'dns',
    'domain', 'events', 'fs', 'http', 'https', 'net', 'os', 'path', 'punycode',
    'querystring', 'readline', 'repl', 'stream', 'string_decoder', 'timers',
    'tls', 'tty', 'url', 'util', 'v8', 'vm', 'zlib', 'constants', 'module',
    'process', 'console', 'http2', 'perf_hooks', 'trace_events', 'worker_threads',
    'require', 'exports'
])

# Roots that bundler aliases and project-relative imports start with.
# 'lib' and 'libs' are left out: real packages use them as a first segment.
INTERNAL_ALIAS_ROOTS = frozenset([
    'src', 'app', 'apps', 'components', 'component', 'pages', 'layouts', 'views',
    'hooks', 'utils', 'services', 'service', 'store', 'stores',
    'state', 'modules', 'assets', 'styles', 'css', 'scss', 'sass', 'less',
    'images', 'img', 'fonts', 'locales', 'i18n', 'types', 'constants',
    'config', 'configs', 'public'
])

INTERNAL_ALIAS_PREFIXES = ('@/', '~/', '~~/')

COMMON_DIRS = (
    '/static/js/', '/static/scripts/', '/assets/js/', '/assets/scripts/',
    '/js/', '/scripts/', '/dist/', '/build/', '/out/',
    '/_next/static/', '/_nuxt/', '/webpack/',
    '/.next/', '/public/', '/lib/', '/src/'
)

CONFIG_FILES = (
    # Node/npm
    '/package.json',
    '/package-lock.json',
    '/yarn.lock',
    '/pnpm-lock.yaml',
    '/npm-shrinkwrap.json',
    '/.npmrc',
    '/.yarnrc',
    '/.yarnrc.yml',
    '/node_modules/',

    # Bundlers/frameworks
    '/webpack.config.js',
    '/vite.config.js',
    '/vite.config.ts',
    '/next.config.js',
    '/nuxt.config.js',
    '/rollup.config.js',
    '/babel.config.js',
    '/tsconfig.json',

    # Environment/secrets
    '/.env',
    '/.env.local',
    '/.env.development',
    '/.env.production',
    '/.env.test',
    '/docker-compose.yml',
    '/Dockerfile'
)

_JSON_OBJECT = re.compile(r'^\s*\{')
_ENV_LINE = re.compile(r'^[A-Z_]+=', re.MULTILINE)
_VITE = re.compile(r'export default|defineConfig')

CONFIG_PATTERNS = MappingProxyType({
    'package.json': _JSON_OBJECT,
    'package-lock.json': _JSON_OBJECT,
    'yarn.lock': re.compile(r'^#.*yarn|registry', re.IGNORECASE),
    'pnpm-lock.yaml': re.compile(r'^lockfileVersion'),
    'npm-shrinkwrap.json': _JSON_OBJECT,
    '.npmrc': re.compile(r'registry=|disturl=|always-auth=|_auth='),
    '.yarnrc': re.compile(r'--install|yarn-path'),
    '.yarnrc.yml': re.compile(r'nodeLinker:|yarnPath:'),
    'node_modules': re.compile(r'Index of|Parent Directory', re.IGNORECASE),
    'webpack.config.js': re.compile(r'module\.exports|require\(|import '),
    'vite.config.js': _VITE,
    'vite.config.ts': _VITE,
    'next.config.js': re.compile(r'module\.exports|nextConfig'),
    'nuxt.config.js': re.compile(r'export default|defineNuxtConfig'),
    'rollup.config.js': re.compile(r'export default'),
    'babel.config.js': re.compile(r'module\.exports'),
    'tsconfig.json': _JSON_OBJECT,
    '.env': _ENV_LINE,
    '.env.local': _ENV_LINE,
    '.env.development': _ENV_LINE,
    '.env.production': _ENV_LINE,
    '.env.test': _ENV_LINE,
    'docker-compose.yml': re.compile(r'^version:|services:'),
    'Dockerfile': re.compile(r'^FROM ', re.IGNORECASE),
})


@dataclass(frozen=True)
class InternalModuleRule:
    """A name pattern that belongs to a parent package rather than the registry"""
    parent: Optional[str]
    pattern: Pattern


INTERNAL_MODULE_RULES = (
    InternalModuleRule('prismjs', re.compile(r'^prism-[a-z]+$')),
    InternalModuleRule('highlight.js', re.compile(r'^highlight\.js/lib/languages/')),
    InternalModuleRule('monaco-editor', re.compile(r'^monaco-editor/esm/')),
    InternalModuleRule('codemirror', re.compile(r'^codemirror/mode/')),
    InternalModuleRule('codemirror', re.compile(r'^codemirror/addon/')),
    InternalModuleRule('ace-builds', re.compile(r'^ace/mode/')),
    InternalModuleRule('ace-builds', re.compile(r'^ace/theme/')),
    # Polymer / web components
    InternalModuleRule(None, re.compile(r'^(dom-module|custom-style|ps-dom-if|ps-dom-repeat)$')),
    InternalModuleRule(None, re.compile(r'^(iron-|paper-|neon-|app-).+$')),
    # YouTube
    InternalModuleRule(None, re.compile(r'^yt-.+$')),
    InternalModuleRule(None, re.compile(r'^ytd-.+$')),
)


@dataclass(frozen=True)
class ScannerConfig:
    """Immutable settings shared by every scanner component"""

    # Registry lookups
    api_rate_limit: int = 50
    api_window: float = 60.0
    rate_limit_buffer: float = 0.1
    cache_ttl: float = 300.0
    min_downloads_suspicious: int = 100
    registry_url: str = 'https://registry.npmjs.org'
    downloads_url: str = 'https://api.npmjs.org/downloads/point/last-week'

    # Crawling
    max_concurrent_requests: int = 10
    max_concurrent_scans: int = 5
    chunk_size: int = 5
    request_timeout: float = 8.0
    probe_range_bytes: int = 512
    user_agent: str = USER_AGENT
    max_redirects: int = 3

    common_dirs: Tuple[str, ...] = COMMON_DIRS
    config_files: Tuple[str, ...] = CONFIG_FILES
    config_patterns: Mapping[str, Pattern] = field(default_factory=lambda: CONFIG_PATTERNS)
    node_builtins: frozenset = NODE_BUILTINS
    internal_alias_prefixes: Tuple[str, ...] = INTERNAL_ALIAS_PREFIXES
    internal_alias_roots: frozenset = INTERNAL_ALIAS_ROOTS
    internal_module_rules: Tuple[InternalModuleRule, ...] = INTERNAL_MODULE_RULES

    def with_overrides(self, **overrides) -> 'ScannerConfig':
        """Return a copy with the given fields replaced, ignoring None values"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


DEFAULT_CONFIG = ScannerConfig()
