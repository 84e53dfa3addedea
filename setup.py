import logging
import os
import pprint

from setuptools import find_packages, setup
from setuptools.command.bdist_wheel import bdist_wheel as _bdist_wheel
from setuptools.dist import Distribution

MYPYC_ENV = 'DEXPATCH_MYPYC'
"""Set to ``1`` to compile the wheel with `mypyc`."""

def enable_mypyc(dist: Distribution) -> None:
    """
    Enable `mypyc` as extension modules.

    References:

    * https://mypyc.readthedocs.io/en/latest/getting_started.html#using-setup-py
    """
    from mypyc.build import mypycify

    ext_modules = mypycify(
        [
            'dexpatch/patch/composite_impl.py',
            'dexpatch/patch/composite.py',
            'dexpatch/patch/instruction.py',
            'dexpatch/tools/dex/opcode.py',
            'dexpatch/tools/dex/reference.py',
        ],
        verbose=True,
        strict_dunder_typing=True,
    )
    logging.info(f'The following mypyc extension modules will be used:\n{pprint.pformat(ext_modules)}')
    dist.ext_modules = ext_modules

class bdist_wheel(_bdist_wheel):
    """
    Compile with `mypyc` when building wheels, if requested through :py:data:`MYPYC_ENV`.
    """
    def finalize_options(self) -> None:
        logging.info('Building a built distribution (bdist).')
        if os.environ.get(MYPYC_ENV) == '1':
            enable_mypyc(self.distribution)
        super().finalize_options()
        if self.distribution.ext_modules:
            assert self.root_is_pure is False

setup(
    name='dexpatch',
    version='0.1.0',
    description='Locate and patch Dalvik bytecode by structure rather than by position.',
    packages=find_packages(include=('dexpatch', 'dexpatch.*')),
    python_requires='>=3.10',
    install_requires=[
        'attrs',
        'backports.strenum; python_version < "3.11"',
        'mypy_extensions',
        'regex',
        'rich',
        'typeguard>=4',
        'typing_extensions; python_version < "3.12"',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
        'mypyc': [
            'mypy',
        ],
    },
    cmdclass={
        'bdist_wheel': bdist_wheel,
    },
)
