from setuptools import setup, find_packages

setup(name='strandio',
      version='0.0.1',
      description='Cooperative strands of execution, driven by a trampoline on a single-threaded reactor',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Operating System :: POSIX :: Linux",
      ],
      keywords='coroutine cooperative scheduling reactor',
      license='MIT',
      packages=find_packages(),
      python_requires='>=3.8',
      install_requires=[
          'trio',
          'outcome',
      ],
)
