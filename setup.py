import io

import setuptools

name = 'chaosexp'
desc = 'Create, record and destroy chaos experiments.'

author = "chaosexp developers"
author_email = 'chaosexp@example.org'

packages = [
    'chaosexp',
    'chaosexp.actions',
    'chaosexp.common',
    'chaosexp.execute',
]

test_require = []
with io.open('requirements-dev.txt') as f:
    test_require = [l.strip() for l in f if l.strip() and not l.startswith('#')]

install_require = []
with io.open('requirements.txt') as f:
    install_require = [l.strip() for l in f if l.strip() and not l.startswith('#')]

setup_params = dict(
    name=name,
    version='0.1.0',
    description=desc,
    author=author,
    author_email=author_email,
    license='Apache-2.0',
    packages=packages,
    install_requires=install_require,
    tests_require=test_require,
    extras_require={'test': test_require},
    entry_points={
        'console_scripts': [
            'chaosexp = chaosexp.cli:main_entry',
        ],
    },
    python_requires='>=3.8'
)


def main():
    """Package installation entry point."""
    setuptools.setup(**setup_params)


if __name__ == '__main__':
    main()
