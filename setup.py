from setuptools import setup, find_packages

with open('README.md', 'r', encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='reconedit',
    version='0.1.0',
    description='Consistent deletion and similarity transforms for COLMAP-style reconstructions',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.20.0',
        'scipy>=1.4.0',  # Euler angle conversions
    ],
    extras_require={
        'dev': [
            'pytest>=6.0',
        ]
    },
)
