"""Record selection: weighted downsampling and allowlists."""

from sampling.downsample import DownsampleSelector, MimeMode, RuleTable
from sampling.allowlist import LangCharsetSampler, MimeExtensionAllowlist, MimeRateSampler

__all__ = [
    'DownsampleSelector', 'MimeMode', 'RuleTable',
    'LangCharsetSampler', 'MimeExtensionAllowlist', 'MimeRateSampler',
]
