# y86tools

Tools for the Y86 instruction set: an assembler that turns `.ys` source
into `.yo` object listings, an instruction set simulator that runs those
listings, and a code generator that writes HCL control-logic expressions
out as C, Verilog or UCLID.

## Installation

```
pip install .
```

## Assembling

```
yas prog.ys
```

This writes `prog.yo` next to the source. Each line of the listing shows
the address, the encoded bytes and the original source line:

```
  0x000:              | 	.pos 0
  0x000: 30f400010000 | init:	irmovl Stack, %esp
```

`yas -V prog.ys` writes Verilog memory initialisation to standard output
instead, and `yas -V8 prog.ys` spreads it over eight banks. Errors are
reported on standard error and the command exits with status 1.

From Python:

```python
from y86tools.assembler import Assembler, AssemblyError

try:
    listing = Assembler().assemble(source_text)
except AssemblyError as err:
    print(err.errors)
```

`Assembler(vcode=True, block_factor=8)` produces the Verilog form, and
`big_mem=True` prints four-digit addresses. Only lines that end with a
line terminator are assembled. Lines are split into tokens by
`y86tools.lexer.tokenize`, which raises `LexError` on a character that
starts no token.

## Simulating

```
yis prog.yo [max_steps]
```

The program runs until it halts, faults or reaches `max_steps` (10000 by
default). Then the number of steps, the final PC, status and condition
codes, and every register and memory word that changed are printed.

From Python:

```python
import io
from y86tools.state import State
from y86tools.yis import run
from y86tools.isa import Stat

state = State(1 << 13)
with open("prog.yo") as f:
    state.m.load(f, True)
out = io.StringIO()
steps, status = run(state, 10000, out)
assert status == Stat.HLT
```

`State` holds `pc`, the register file `r`, the memory `m` and the
condition code `cc`. `State.step` executes one instruction and returns a
`Stat`; `State.copy` and `State.diff` snapshot and compare machine states.
`Memory.load` raises `LoadError` on a malformed listing.

## ISA building blocks

`y86tools.isa` holds the register IDs (`Reg`, `find_register`,
`reg_name`), the instruction table (`find_instr`, `iname`, `bad_instr`),
byte-addressed `Memory` and `RegisterFile` (with `copy`, `diff` and
`dump`), the ALU (`compute_alu`, `compute_cc`, `op_name`), condition
codes (`pack_cc`, `cc_name`, `cond_holds`) and status names
(`stat_name`). Out-of-range memory accesses raise `MemoryAccessError`.

## HCL code generation

`y86tools.node.CodeGenerator` builds expression trees with methods such
as `make_var`, `make_and`, `make_comp`, `make_ele` and `make_case`,
binds variables with `add_arg`, and writes each definition with
`gen_funct`. Output goes through `y86tools.outgen.OutputGenerator`, which
wraps long lines at a fixed column. The `Target` enum picks C, Verilog or
UCLID output. Type errors in an expression raise `HCLError`.

## What is not included

There is no command that reads HCL files: the package has no HCL parser,
so `CodeGenerator` is driven only through its Python methods. There is no
pipelined processor simulator and no graphical interface; `yis` is the
only simulator.

## Examples

`y86tools.examples` holds `sum_list`, `rsum_list` and `copy_block`, the
reference functions for linked-list sums (over `Ele` nodes) and block
copying with an xor checksum.