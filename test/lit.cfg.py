# -*- Python -*-

import os
import platform
import shutil
import subprocess
import sys

import lit.formats

# Configuration file for the 'lit' test runner.

# name: The name of this test suite.
config.name = 'solflame'

# testFormat: The test format to use to interpret tests.
config.test_format = lit.formats.ShTest(True)

# suffixes: A list of file extensions to treat as test files.
config.suffixes = ['.test']

# test_source_root: The root path where tests are located.
config.test_source_root = os.path.dirname(__file__)

# test_exec_root: The root path where tests should be run.
config.test_exec_root = os.path.join(config.test_source_root, 'Output')

# Find solflame
if hasattr(config, 'solflame') and config.solflame:
    solflame_path = config.solflame
else:
    solflame_path = shutil.which('solflame')

config.substitutions.append(('%solflame', solflame_path or 'solflame'))

# Test directories
config.substitutions.append(('%{inputs}', os.path.join(config.test_source_root, 'Inputs')))

# Platform-specific features
if platform.system() == 'Darwin':
    config.available_features.add('darwin')
elif platform.system() == 'Linux':
    config.available_features.add('linux')

# Check if solflame is available
def check_solflame():
    if not solflame_path:
        return False
    try:
        subprocess.run([solflame_path, '--help'], check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError):
        return False
    return True

if check_solflame():
    config.available_features.add('solflame')

# Add 'not' command
not_path = shutil.which('not')
if not not_path:
    # Try common locations
    for path in ['/usr/local/opt/llvm/bin', '/opt/homebrew/opt/llvm/bin', '/usr/bin']:
        candidate = os.path.join(path, 'not')
        if os.path.exists(candidate):
            not_path = candidate
            break
if not_path:
    config.substitutions.append(('not', not_path))

# Find and add FileCheck
filecheck_path = None
for path in ['/usr/local/opt/llvm/bin', '/opt/homebrew/opt/llvm/bin', '/usr/bin']:
    candidate = os.path.join(path, 'FileCheck')
    if os.path.exists(candidate):
        filecheck_path = candidate
        break

if filecheck_path:
    config.substitutions.append(('FileCheck', filecheck_path))
else:
    # If FileCheck is not found, tests will fail but we'll let lit report it
    config.substitutions.append(('FileCheck', shutil.which('FileCheck') or 'FileCheck'))

# Environment variables
config.environment['PYTHONPATH'] = os.pathsep.join(sys.path)
# Keep diagnostics free of ANSI codes
config.environment['NO_COLOR'] = '1'
